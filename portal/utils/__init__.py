"""
Utils Package
"""
from portal.utils.helpers import (
    now_utc,
    get_timezone,
    utc_to_local,
    isoformat,
    generate_code,
    is_admin,
    require_admin
)

__all__ = [
    'now_utc',
    'get_timezone',
    'utc_to_local',
    'isoformat',
    'generate_code',
    'is_admin',
    'require_admin'
]
