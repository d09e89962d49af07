"""
Student Admission
Checks the entry form before a session is created. Nothing is written here.
"""
from collections import namedtuple
import logging

from portal.errors import ValidationError
from portal.extensions import db
from portal.models import Exam
from portal.services.retests import check_already_attempted, validate_retest_key
from portal.services.slots import validate_access_code
from portal.utils.helpers import now_utc

logger = logging.getLogger(__name__)

CLASSES = [f'Class {n}' for n in range(1, 13)]

Admission = namedtuple(
    'Admission',
    [
        'test_id', 'student_name', 'father_name', 'class_applying_for',
        'slot_number', 'retest_key_id', 'is_master_key',
    ],
)


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def resolve_retest_key(key, test_id=None, now=None):
    """
    Standalone retest-key check from the entry page. Without a selected test the
    key is looked up globally and the test / student are resolved from it.
    """
    key = (key or '').strip()
    if not key:
        raise ValidationError('Enter a key')

    test_id = _as_int(test_id)
    check = validate_retest_key(key, test_id, now)
    if not check.valid:
        if test_id is None:
            raise ValidationError('Invalid key or Test not identified. Please select a test first.')
        raise ValidationError('Invalid or expired retest key')
    return check


def admit_student(form, now=None):
    """
    Validate an entry form.

    Args:
        form: mapping with test_id, student_name, father_name,
              class_applying_for, access_code and optional retest_key

    Returns:
        Admission bound to the slot of the matched access code

    Raises:
        ValidationError: with a message meant for the student
    """
    now = now or now_utc()

    test_id = _as_int(form.get('test_id'))
    student_name = (form.get('student_name') or '').strip()
    father_name = (form.get('father_name') or '').strip()
    class_applying_for = (form.get('class_applying_for') or '').strip()
    access_code = (form.get('access_code') or '').strip().upper()
    retest_key = (form.get('retest_key') or '').strip()

    if not test_id or not student_name or not father_name or not class_applying_for:
        raise ValidationError('Please fill all required fields')
    if class_applying_for not in CLASSES:
        raise ValidationError('Please select a valid class')
    if not access_code:
        raise ValidationError('Please enter the access code')

    exam = db.session.get(Exam, test_id)
    if not exam or not exam.is_published:
        raise ValidationError('This test is not available')

    access = validate_access_code(test_id, access_code, now)
    if not access.valid:
        raise ValidationError(access.reason or 'Invalid or expired access code')

    retest = None
    if retest_key:
        retest = validate_retest_key(retest_key, test_id, now)
        if not retest.valid:
            raise ValidationError('Invalid or expired retest key')

    if retest is None and check_already_attempted(test_id, access.slot_number, student_name, father_name):
        logger.info("Blocked repeat attempt by %s on test %s slot %s", student_name, test_id, access.slot_number)
        raise ValidationError(
            'You have already attempted this test in this time slot. Use a retest key if applicable.'
        )

    return Admission(
        test_id=test_id,
        student_name=student_name,
        father_name=father_name,
        class_applying_for=class_applying_for,
        slot_number=access.slot_number,
        retest_key_id=retest.retest_key_id if retest else None,
        is_master_key=retest.is_master_key if retest else False,
    )
