"""
Helper Functions
Utility functions used across the application
"""
from datetime import datetime, timezone
from functools import wraps
import random
import string

import pytz
from flask import session, jsonify, current_app

CODE_ALPHABET = string.ascii_uppercase + string.digits


def now_utc():
    """Current UTC timestamp, naive (all timestamps are stored as naive UTC)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_timezone(name=None):
    """Configured local timezone"""
    if name is None:
        name = current_app.config.get('TIMEZONE', 'UTC')
    return pytz.timezone(name)


def utc_to_local(utc_dt, tz=None):
    """Convert naive UTC datetime to the configured local zone"""
    if not utc_dt:
        return None
    tz = tz or get_timezone()
    return pytz.utc.localize(utc_dt).astimezone(tz)


def isoformat(dt):
    """ISO-8601 with explicit UTC offset for JSON payloads"""
    if not dt:
        return None
    return pytz.utc.localize(dt).isoformat()


def generate_code(length=6, rng=None):
    """Random uppercase alphanumeric code"""
    rng = rng or random
    return "".join(rng.choices(CODE_ALPHABET, k=length))


def is_admin():
    return session.get("role") == "admin"


# Decorators
def require_admin(f):
    """Decorator to require the admin role (shared-secret login)"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_admin():
            return jsonify({'success': False, 'error': 'Admin access required'}), 401
        return f(*args, **kwargs)
    return decorated_function
