SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY'
}


class ClaimError(Exception):
    """Base class for claims rejected before a reward decision exists"""
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'reward': 0, 'error': self.message}


class AuthenticationRequired(ClaimError):
    status_code = 401


class ClaimValidationError(ClaimError):
    status_code = 400

    def __init__(self, errors, message='Inconsistent metadata'):
        super().__init__(message)
        self.errors = errors

    def to_dict(self):
        payload = super().to_dict()
        payload['errors'] = self.errors
        return payload


class RateLimited(ClaimError):
    status_code = 429

    def __init__(self, reason, retry_after, cooldown=False):
        super().__init__(reason)
        self.retry_after = retry_after
        self.cooldown = cooldown

    def to_dict(self):
        payload = super().to_dict()
        payload['reason'] = self.message
        payload['retryAfter'] = self.retry_after
        if self.cooldown:
            payload['cooldownRemaining'] = self.retry_after
        return payload


class InternalComputationError(ClaimError):
    status_code = 500


def mask_identifier(value, show_first=3, show_last=2):
    """Mask user ids and fingerprints before they reach the logs"""
    value = str(value) if value is not None else ''
    if len(value) <= (show_first + show_last):
        return "[REDACTED]"
    return f"{value[:show_first]}...{value[-show_last:]}"
