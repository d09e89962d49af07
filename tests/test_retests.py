from datetime import timedelta
import re

import pytest

from portal.errors import NotFoundError, ValidationError
from portal.extensions import db
from portal.models import RetestKey, Submission
from portal.services.retests import (
    check_already_attempted,
    delete_retest_key,
    invalidate_previous_submission,
    issue_retest_key,
    mark_retest_key_as_used,
    validate_retest_key,
)
from portal.utils.helpers import now_utc


def test_master_key_needs_no_lookup(app):
    check = validate_retest_key('MASTER-OVERRIDE', test_id=99)
    assert check.valid
    assert check.is_master_key
    assert check.retest_key_id is None


def test_key_scoped_to_test(make_exam, make_submission, make_retest_key):
    exam = make_exam()
    other = make_exam(title='Other')
    retest_key = make_retest_key(make_submission(exam))

    check = validate_retest_key('RETEST01', exam.id)
    assert check.valid
    assert check.retest_key_id == retest_key.id
    assert check.student_name == 'Ravi Kumar'
    assert not check.is_master_key

    assert not validate_retest_key('RETEST01', other.id).valid


def test_used_and_expired_keys_are_rejected(make_exam, make_submission, make_retest_key):
    exam = make_exam()
    submission = make_submission(exam)
    make_retest_key(submission, key='USEDKEY1', is_used=True)
    make_retest_key(submission, key='OLDKEY01', expires_in=timedelta(hours=-1))

    assert not validate_retest_key('USEDKEY1', exam.id).valid
    assert not validate_retest_key('OLDKEY01', exam.id).valid
    assert not validate_retest_key('', exam.id).valid


def test_global_lookup_resolves_test(make_exam, make_submission, make_retest_key):
    exam = make_exam()
    make_retest_key(make_submission(exam, slot_number=4))

    check = validate_retest_key('RETEST01')
    assert check.valid
    assert check.test_id == exam.id
    assert check.slot_number == 4


def test_already_attempted_only_counts_completed(make_exam, make_submission):
    exam = make_exam()
    make_submission(exam, status='auto_submitted')
    assert not check_already_attempted(exam.id, 1, 'Ravi Kumar', 'Suresh Kumar')

    make_submission(exam)
    assert check_already_attempted(exam.id, 1, 'Ravi Kumar', 'Suresh Kumar')
    assert not check_already_attempted(exam.id, 1, 'Ravi Kumar', 'Mahesh Kumar')
    assert not check_already_attempted(exam.id, 2, 'Ravi Kumar', 'Suresh Kumar')


def test_invalidate_latest_prior_submission(make_exam, make_submission):
    exam = make_exam()
    now = now_utc()
    older = make_submission(exam, submitted_at=now - timedelta(hours=3), score=2)
    latest = make_submission(exam, status='auto_submitted', submitted_at=now - timedelta(hours=1), score=4)

    invalidated = invalidate_previous_submission(exam.id, 1, 'Ravi Kumar', 'Suresh Kumar')

    assert invalidated == latest.id
    db.session.expire_all()
    assert db.session.get(Submission, latest.id).status == 'invalidated_by_retest'
    assert db.session.get(Submission, latest.id).score == 4
    assert db.session.get(Submission, older.id).status == 'completed'


def test_invalidate_respects_cutoff(make_exam, make_submission):
    exam = make_exam()
    now = now_utc()
    earlier = make_submission(exam, submitted_at=now - timedelta(hours=1))
    make_submission(exam, submitted_at=now + timedelta(minutes=5))

    assert invalidate_previous_submission(
        exam.id, 1, 'Ravi Kumar', 'Suresh Kumar', submitted_before=now
    ) == earlier.id


def test_invalidate_without_match_is_noop(make_exam):
    exam = make_exam()
    assert invalidate_previous_submission(exam.id, 1, 'Nobody', 'None') is None


def test_mark_key_used_is_idempotent(make_exam, make_submission, make_retest_key):
    exam = make_exam()
    retest_key = make_retest_key(make_submission(exam))
    new_submission = make_submission(exam)

    assert mark_retest_key_as_used(retest_key.id, new_submission.id)
    assert mark_retest_key_as_used(retest_key.id, new_submission.id)

    db.session.expire_all()
    stored = db.session.get(RetestKey, retest_key.id)
    assert stored.is_used
    assert stored.used_by_submission_id == new_submission.id

    assert not mark_retest_key_as_used(9999, new_submission.id)


def test_issue_retest_key(make_exam, make_submission):
    exam = make_exam()
    submission = make_submission(exam, slot_number=3)
    now = now_utc()

    retest_key = issue_retest_key(submission.id, now=now)

    assert re.fullmatch(r'[A-Z0-9]{8}', retest_key.key)
    assert retest_key.expires_at == now + timedelta(hours=24)
    assert retest_key.slot_number == 3
    assert retest_key.student_name == submission.student_name
    assert validate_retest_key(retest_key.key, exam.id).valid


def test_issue_for_unknown_submission(app):
    with pytest.raises(NotFoundError):
        issue_retest_key(12345)


def test_delete_only_unused_keys(make_exam, make_submission, make_retest_key):
    exam = make_exam()
    submission = make_submission(exam)
    used = make_retest_key(submission, key='USEDKEY1', is_used=True)
    unused = make_retest_key(submission, key='FRESHKEY')

    with pytest.raises(ValidationError):
        delete_retest_key(used.id)

    delete_retest_key(unused.id)
    assert db.session.get(RetestKey, unused.id) is None
