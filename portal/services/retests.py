"""
Retest Service
Issue, validate and consume retest keys; find and invalidate prior attempts.
"""
from collections import namedtuple
from datetime import timedelta
import logging

from flask import current_app

from portal.errors import NotFoundError, StorageError, UniqueViolation, ValidationError
from portal.extensions import db
from portal.models import RetestKey, Submission
from portal.models.submission import (
    STATUS_AUTO_SUBMITTED,
    STATUS_COMPLETED,
    STATUS_INVALIDATED,
)
from portal.store import atomic, save
from portal.utils.helpers import generate_code, now_utc

logger = logging.getLogger(__name__)

KEY_GENERATION_ATTEMPTS = 5

RetestCheck = namedtuple(
    'RetestCheck',
    [
        'valid', 'retest_key_id', 'original_submission_id', 'student_name',
        'is_master_key', 'test_id', 'slot_number',
    ],
    defaults=(None, None, None, False, None, None),
)

INVALID_KEY = RetestCheck(False)


def is_master_key(key):
    master = current_app.config.get('RETEST_MASTER_KEY')
    return bool(master) and key == master


def _usable_keys(key, now):
    return RetestKey.query.filter(
        RetestKey.key == key,
        RetestKey.is_used.is_(False),
        RetestKey.expires_at > now,
    )


def validate_retest_key(key, test_id=None, now=None):
    """
    Validate a retest key.

    The master key short-circuits without any lookup. With `test_id` the key must
    belong to that test. Without it the key is searched globally and its test,
    slot and student are resolved from the key itself; this lookup is not
    isolated by test.
    """
    key = (key or '').strip()
    if not key:
        return INVALID_KEY

    if is_master_key(key):
        return RetestCheck(True, is_master_key=True, test_id=test_id)

    now = now or now_utc()
    query = _usable_keys(key, now)
    if test_id is not None:
        query = query.filter(RetestKey.test_id == test_id)

    retest_key = query.first()
    if not retest_key:
        logger.info("Rejected retest key %s (test=%s)", key, test_id)
        return INVALID_KEY

    return RetestCheck(
        True,
        retest_key_id=retest_key.id,
        original_submission_id=retest_key.submission_id,
        student_name=retest_key.student_name,
        is_master_key=False,
        test_id=retest_key.test_id,
        slot_number=retest_key.slot_number,
    )


def check_already_attempted(test_id, slot_number, student_name, father_name):
    """True iff a completed submission exists for this exact test/slot/name/father-name"""
    existing = Submission.query.filter_by(
        test_id=test_id,
        slot_number=slot_number,
        student_name=student_name,
        father_name=father_name,
        status=STATUS_COMPLETED,
    ).first()
    return existing is not None


def invalidate_previous_submission(test_id, slot_number, student_name, father_name,
                                   retest_key_id=None, submitted_before=None):
    """
    Mark the latest completed / auto-submitted attempt for the tuple as
    invalidated_by_retest. Score and answers stay untouched.

    Returns:
        int or None: id of the invalidated submission
    """
    query = Submission.query.filter(
        Submission.test_id == test_id,
        Submission.slot_number == slot_number,
        Submission.student_name == student_name,
        Submission.father_name == father_name,
        Submission.status.in_([STATUS_COMPLETED, STATUS_AUTO_SUBMITTED]),
    )
    if submitted_before is not None:
        query = query.filter(Submission.submitted_at < submitted_before)

    previous = query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).first()
    if previous is None:
        logger.info("No prior submission to invalidate for %s (test %s, slot %s)",
                    student_name, test_id, slot_number)
        return None

    with atomic():
        previous.status = STATUS_INVALIDATED

    logger.info("Invalidated submission %s by retest (key=%s)", previous.id, retest_key_id)
    return previous.id


def mark_retest_key_as_used(key_id, new_submission_id):
    """Consume a key and link the new submission; repeating the call overwrites harmlessly"""
    with atomic():
        updated = RetestKey.query.filter_by(id=key_id).update({
            'is_used': True,
            'used_by_submission_id': new_submission_id,
        })
    if not updated:
        logger.warning("Retest key %s not found while consuming", key_id)
    return bool(updated)


# ================= ADMIN =================

def issue_retest_key(submission_id, now=None, rng=None):
    """Create a retest key for the student behind `submission_id`"""
    submission = db.session.get(Submission, submission_id)
    if not submission:
        raise NotFoundError('Submission not found')

    now = now or now_utc()
    length = current_app.config.get('RETEST_KEY_LENGTH', 8)
    ttl = timedelta(hours=current_app.config.get('RETEST_KEY_TTL_HOURS', 24))

    for attempt in range(1, KEY_GENERATION_ATTEMPTS + 1):
        retest_key = RetestKey(
            test_id=submission.test_id,
            submission_id=submission.id,
            slot_number=submission.slot_number or 0,
            student_name=submission.student_name,
            key=generate_code(length, rng),
            created_at=now,
            expires_at=now + ttl,
        )
        try:
            save(retest_key)
        except UniqueViolation:
            logger.warning("Retest key collision on attempt %s", attempt)
            continue
        logger.info("Issued retest key %s for submission %s", retest_key.id, submission_id)
        return retest_key

    raise StorageError('Could not issue a unique retest key')


def list_retest_keys():
    return RetestKey.query.order_by(RetestKey.created_at.desc(), RetestKey.id.desc()).all()


def delete_retest_key(key_id):
    retest_key = db.session.get(RetestKey, key_id)
    if not retest_key:
        raise NotFoundError('Retest key not found')
    if retest_key.is_used:
        raise ValidationError('A used retest key cannot be deleted')
    with atomic() as session:
        session.delete(retest_key)
    logger.info("Deleted retest key %s", key_id)
