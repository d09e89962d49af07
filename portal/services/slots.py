"""
Slot Service
Time-slot allocation, access-code issuing and access-code validation
"""
from collections import namedtuple
from datetime import datetime, timedelta
import logging

import pytz
from flask import current_app

from portal.errors import StorageError, UniqueViolation
from portal.models import AccessCode, Slot
from portal.store import save
from portal.utils.helpers import generate_code, get_timezone, now_utc

logger = logging.getLogger(__name__)

DEFAULT_SLOT_MINUTES = 120

# Bounded retries when a freshly generated code collides with an existing one
CODE_GENERATION_ATTEMPTS = 5

# Below this many seconds left, a code is shown as expiring
EXPIRY_WARNING_SECONDS = 10 * 60

AccessCheck = namedtuple('AccessCheck', ['valid', 'slot_number', 'reason'])


# ================= SLOT ARITHMETIC =================

def _local_midnight(instant, tz):
    """Local midnight (aware) of the day containing `instant` (naive UTC)"""
    local = pytz.utc.localize(instant).astimezone(tz)
    return tz.localize(datetime(local.year, local.month, local.day))


def slot_number_for(instant, tz=pytz.utc, width_minutes=DEFAULT_SLOT_MINUTES):
    """1-based slot index of `instant` counted from local midnight"""
    midnight = _local_midnight(instant, tz)
    elapsed = pytz.utc.localize(instant) - midnight
    return int(elapsed.total_seconds() // (width_minutes * 60)) + 1


def slot_window(slot_number, instant, tz=pytz.utc, width_minutes=DEFAULT_SLOT_MINUTES):
    """
    [start, end) of a slot on the local day containing `instant`.

    Returns:
        tuple: naive UTC start and end
    """
    midnight = _local_midnight(instant, tz)
    start = midnight + timedelta(minutes=(slot_number - 1) * width_minutes)
    end = start + timedelta(minutes=width_minutes)
    return (
        start.astimezone(pytz.utc).replace(tzinfo=None),
        end.astimezone(pytz.utc).replace(tzinfo=None),
    )


def _slot_minutes():
    return current_app.config.get('SLOT_DURATION_MINUTES', DEFAULT_SLOT_MINUTES)


def current_slot_number(now=None):
    return slot_number_for(now or now_utc(), get_timezone(), _slot_minutes())


# ================= ALLOCATOR =================

def find_slot(test_id, slot_number):
    return Slot.query.filter_by(test_id=test_id, slot_number=slot_number).first()


def get_or_create_slot(test_id, now=None):
    """
    Fetch the slot row for the current window of a test, creating it on first access.
    A concurrent creator loses on the (test_id, slot_number) constraint and re-reads.
    """
    now = now or now_utc()
    width = _slot_minutes()
    slot_number = slot_number_for(now, get_timezone(), width)

    slot = find_slot(test_id, slot_number)
    if slot:
        return slot

    start, end = slot_window(slot_number, now, get_timezone(), width)
    slot = Slot(
        test_id=test_id,
        slot_number=slot_number,
        start_time=start,
        end_time=end,
        duration_minutes=width,
    )
    try:
        save(slot)
    except UniqueViolation:
        logger.info("Slot %s for test %s created concurrently, re-reading", slot_number, test_id)
        slot = find_slot(test_id, slot_number)
        if slot is None:
            raise StorageError(f"Slot {slot_number} for test {test_id} vanished after conflict")
        return slot

    logger.info("Created slot %s for test %s (%s - %s)", slot_number, test_id, start, end)
    return slot


# ================= ACCESS CODES =================

def get_valid_access_code(slot_id, now=None):
    now = now or now_utc()
    return (
        AccessCode.query
        .filter(AccessCode.slot_id == slot_id, AccessCode.valid_until > now)
        .order_by(AccessCode.valid_until.desc())
        .first()
    )


def get_or_create_access_code(slot_id, now=None, rng=None):
    """
    Return the slot's currently valid code unchanged, or mint a new one valid for
    one slot width. Expired codes stay in place and are simply superseded.
    """
    now = now or now_utc()
    existing = get_valid_access_code(slot_id, now)
    if existing:
        return existing

    length = current_app.config.get('ACCESS_CODE_LENGTH', 6)
    valid_until = now + timedelta(minutes=_slot_minutes())

    for attempt in range(1, CODE_GENERATION_ATTEMPTS + 1):
        access_code = AccessCode(
            slot_id=slot_id,
            code=generate_code(length, rng),
            valid_until=valid_until,
        )
        try:
            save(access_code)
        except UniqueViolation:
            logger.warning("Access code collision on attempt %s for slot %s", attempt, slot_id)
            continue
        logger.info("Issued access code for slot %s valid until %s", slot_id, valid_until)
        return access_code

    raise StorageError(f"Could not issue a unique access code for slot {slot_id}")


def access_code_status(seconds_left):
    """Display state of a code countdown"""
    if seconds_left <= 0:
        return 'expired'
    if seconds_left < EXPIRY_WARNING_SECONDS:
        return 'expiring'
    return 'valid'


def current_access_code(test_id, now=None):
    """
    Current slot and code of a test for the admin display.

    Returns:
        dict: slot number, code, expiry, seconds left and display status
    """
    now = now or now_utc()
    slot = get_or_create_slot(test_id, now)
    access_code = get_or_create_access_code(slot.id, now)
    seconds_left = max(0, int((access_code.valid_until - now).total_seconds()))
    return {
        'test_id': test_id,
        'slot_number': slot.slot_number,
        'slot_start': slot.start_time,
        'slot_end': slot.end_time,
        'code': access_code.code,
        'valid_until': access_code.valid_until,
        'seconds_left': seconds_left,
        'status': access_code_status(seconds_left),
    }


def validate_access_code(test_id, code, now=None):
    """
    Match a code against every slot of the test.
    The matched slot's number is the authoritative slot binding for the attempt.
    """
    now = now or now_utc()
    code = (code or '').strip().upper()

    slots = Slot.query.filter_by(test_id=test_id).all()
    if not slots:
        return AccessCheck(False, 0, 'No slots found for this test')

    found_slot = None
    found_code = None
    for slot in slots:
        for access_code in slot.access_codes:
            if access_code.code == code:
                found_slot, found_code = slot, access_code
                break
        if found_slot:
            break

    if not found_code:
        logger.info("Access code %s not found for test %s", code, test_id)
        return AccessCheck(False, 0, 'Code not found')

    if found_code.valid_until <= now:
        return AccessCheck(False, 0, 'Code has expired')

    return AccessCheck(True, found_slot.slot_number, None)

