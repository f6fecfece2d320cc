import math
from functools import wraps
from flask import request
from reward_engine.utils.security import AuthenticationRequired, ClaimValidationError
import logging

logger = logging.getLogger(__name__)

CLAIM_SCHEMA = {
    'userId': {'type': 'str', 'required': True, 'auth': True},
    'questionsAnswered': {'type': 'int', 'min': 0, 'max': 1000, 'aliases': ['dailyQuestionsAnswered']},
    'testsFinished': {'type': 'int', 'min': 0, 'max': 100, 'aliases': ['dailyTestsFinished']},
    'mistakesReviewed': {'type': 'int', 'min': 0, 'max': 500},
    'streakCount': {'type': 'int', 'min': 0, 'max': 365},
    'dailyCreditEarned': {'type': 'int', 'min': 0, 'max': 1000},
    'averageQuestionTimeSeconds': {'type': 'float', 'min': 0, 'aliases': ['averageQuestionTime']},
    'totalSessionTimeSeconds': {'type': 'float', 'min': 0, 'aliases': ['totalSessionTime']},
    'userTier': {'type': 'str'}
}


def _coerce(value, kind):
    if kind == 'str':
        if not isinstance(value, str):
            raise TypeError('Must be a string')
        return value
    if isinstance(value, bool):
        raise TypeError('Must be a number')
    if kind == 'int':
        if isinstance(value, int):
            return value
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            raise TypeError('Must be an integer')
        if not math.isfinite(number) or number != int(number):
            raise TypeError('Must be an integer')
        return int(number)
    if kind == 'float':
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise TypeError('Must be a number')
        except OverflowError:
            raise TypeError('Must be a finite number')
        if not math.isfinite(number):
            raise TypeError('Must be a finite number')
        return number
    return value


def validate_payload(data, schema):
    """Check a JSON body against ``schema``; returns a copy with coerced values.

    Raises AuthenticationRequired for a missing identity field and
    ClaimValidationError with per-field messages for everything else.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ClaimValidationError({'body': 'Must be a JSON object'}, 'Missing JSON body')

    data = dict(data)
    errors = {}

    for field, rules in schema.items():
        for alias in rules.get('aliases', []):
            if data.get(field) is None and data.get(alias) is not None:
                data[field] = data[alias]
        value = data.get(field)

        if value is None or (rules.get('auth') and isinstance(value, str) and not value.strip()):
            if rules.get('auth'):
                raise AuthenticationRequired('Authorization required')
            if rules.get('required'):
                errors[field] = 'This field is required'
            continue

        try:
            value = _coerce(value, rules.get('type'))
        except TypeError as e:
            errors[field] = str(e)
            continue

        if 'min' in rules and value < rules['min']:
            errors[field] = f'Must be at least {rules["min"]}'
        elif 'max' in rules and value > rules['max']:
            errors[field] = f'Must be at most {rules["max"]}'
        else:
            data[field] = value

    if errors:
        logger.warning(f"Validation errors: {errors}")
        raise ClaimValidationError(errors)

    return data


def validate_json_input(schema):
    """JSON validation decorator for Flask routes"""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            request.validated_data = validate_payload(data, schema)
            return f(*args, **kwargs)
        return wrapper
    return decorator
