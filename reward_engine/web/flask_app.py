from flask import Flask
from flask_cors import CORS
from .routes import configure_routes
from reward_engine.database.mongo import create_store
from reward_engine.features.rewards import RewardPolicy, RewardPolicyEngine
from reward_engine.security.anti_abuse import DeviceFingerprintRegistry, TrustScorer
from reward_engine.security.rate_limiter import RateLimiter
from reward_engine.utils.security import SECURITY_HEADERS


def build_engine(config, store):
    """Wire the rate limiter, device registry and scorer into a reward engine"""
    registry = DeviceFingerprintRegistry(store, ttl_hours=config.DEVICE_REGISTRY_TTL_HOURS)
    scorer = TrustScorer(
        registry,
        max_accounts_per_device=config.MAX_ACCOUNTS_PER_DEVICE,
        suspicious_ips=config.SUSPICIOUS_IPS
    )
    return RewardPolicyEngine(
        trust_scorer=scorer,
        rate_limiter=RateLimiter(store),
        policy=RewardPolicy.from_config(config),
        rate_limit=config.CLAIM_RATE_LIMIT,
        rate_window_ms=config.CLAIM_RATE_WINDOW_MS,
        cooldown_seconds=config.CLAIM_COOLDOWN_SECONDS
    )


def create_app(config=None, engine=None):
    """Application factory pattern"""
    if config is None:
        from config import config

    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY
    app.config['PERSIST_PROFILES'] = bool(config.PERSIST_PROFILES and config.MONGO_URI)

    if engine is None:
        engine = build_engine(config, create_store(config))
    app.extensions['reward_engine'] = engine

    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    @app.after_request
    def add_security_headers(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response

    # Configure all routes
    configure_routes(app, engine)

    return app
