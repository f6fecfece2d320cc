# config.py
import os
import re
import urllib.parse
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

# Canonical daily task policy
TASK_REWARDS = {
    'login': 5,
    'questions': 10,
    'mock': 15,
    'mistakes': 10
}

TIER_GOALS = {
    'Bronze': {'questions': 20, 'tests': 1, 'mistakes': 10},
    'Silver': {'questions': 25, 'tests': 1, 'mistakes': 12},
    'Gold': {'questions': 30, 'tests': 2, 'mistakes': 15},
    'Platinum': {'questions': 35, 'tests': 2, 'mistakes': 18}
}

MAX_DAILY_CREDITS = {
    'standard': 80,
    'pro': 200
}

PRO_MULTIPLIER = 1.5
STREAK_RECOVERY_COST = 50

# Load environment variables
load_dotenv()


class Config:

    def __init__(self):
        # Core configuration
        self.ENV = os.getenv('ENV', 'production')
        self.PORT = int(os.getenv('PORT', 10000))
        self.SECRET_KEY = os.getenv('SECRET_KEY', 'your_secret_key_here')

        # MongoDB configuration (optional, in-memory store when unset)
        raw_uri = os.getenv('MONGO_URI')
        self.MONGO_URI = self.encode_mongo_uri(raw_uri) if raw_uri else None
        self.MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'reward-engine')
        self.PERSIST_PROFILES = os.getenv('PERSIST_PROFILES', 'false').lower() == 'true'
        if self.MONGO_URI:
            self.validate_mongo_config()

        # Claim throttling
        self.CLAIM_RATE_LIMIT = int(os.getenv('CLAIM_RATE_LIMIT', 12))
        self.CLAIM_RATE_WINDOW_MS = int(os.getenv('CLAIM_RATE_WINDOW_MS', 3600000))  # 1 hour
        self.CLAIM_COOLDOWN_SECONDS = int(os.getenv('CLAIM_COOLDOWN_SECONDS', 300))

        # Anti-abuse
        self.SUSPICIOUS_IPS = self.parse_ip_list(os.getenv('SUSPICIOUS_IPS', ''))
        self.DEVICE_REGISTRY_TTL_HOURS = int(os.getenv('DEVICE_REGISTRY_TTL_HOURS', 24))
        self.MAX_ACCOUNTS_PER_DEVICE = int(os.getenv('MAX_ACCOUNTS_PER_DEVICE', 3))

        # Maintenance
        self.SWEEP_INTERVAL_MINUTES = int(os.getenv('SWEEP_INTERVAL_MINUTES', 5))

        # Web
        self.CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')

        # Reward policy
        self.TASK_REWARDS = dict(TASK_REWARDS)
        self.TIER_GOALS = {tier: dict(goals) for tier, goals in TIER_GOALS.items()}
        self.MAX_DAILY_CREDITS = dict(MAX_DAILY_CREDITS)
        self.PRO_MULTIPLIER = float(os.getenv('PRO_MULTIPLIER', PRO_MULTIPLIER))
        self.STREAK_RECOVERY_COST = int(os.getenv('STREAK_RECOVERY_COST', STREAK_RECOVERY_COST))

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")

    def encode_mongo_uri(self, uri):
        """Encode special characters in MongoDB URI"""
        if "://" not in uri:
            return uri

        parts = uri.split("://")
        protocol = parts[0]
        auth_host = parts[1]

        if "@" in auth_host:
            auth, host = auth_host.split("@", 1)
            if ":" in auth:
                user, password = auth.split(":", 1)
                password = urllib.parse.quote_plus(password)
                auth = f"{user}:{password}"
            return f"{protocol}://{auth}@{host}"
        return uri

    def validate_mongo_config(self):
        """Validate MongoDB configuration"""
        self.MONGO_URI = self.MONGO_URI.strip()

        # Remove surrounding quotes if present
        if self.MONGO_URI.startswith('"') and self.MONGO_URI.endswith('"'):
            self.MONGO_URI = self.MONGO_URI[1:-1]

        if not re.match(r'^mongodb(\+srv)?://', self.MONGO_URI):
            # Log first 20 chars for debugging (without exposing credentials)
            sample = self.MONGO_URI[:20]
            logger.error(f"Invalid MONGO_URI format. Starts with: '{sample}...'")
            raise ValueError("Invalid MongoDB URI format")

        logger.info(f"Using MongoDB database: {self.MONGO_DB_NAME}")

    def parse_ip_list(self, raw):
        """Parse a comma separated IP list"""
        return {ip.strip() for ip in raw.split(',') if ip.strip()}

    def log_config_summary(self):
        """Log a secure summary of the configuration"""
        logger.info("Configuration Summary:")
        logger.info(f"Environment: {self.ENV}")
        logger.info(f"Store: {'MongoDB ' + self.MONGO_DB_NAME if self.MONGO_URI else 'in-memory'}")
        logger.info(f"Claim limit: {self.CLAIM_RATE_LIMIT} per {self.CLAIM_RATE_WINDOW_MS // 1000}s")
        logger.info(f"Claim cooldown: {self.CLAIM_COOLDOWN_SECONDS}s")
        logger.info(f"Daily caps: {self.MAX_DAILY_CREDITS}")
        logger.info(f"Suspicious IPs configured: {len(self.SUSPICIOUS_IPS)}")


# Create singleton instance
config = Config()
