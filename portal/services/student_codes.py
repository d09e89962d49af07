"""
Student Code Generator
Human-readable identifiers for test-takers. The serial is a cosmetic ordinal;
uniqueness of the stored code is enforced when the submission is inserted.
"""
import random
import re
import time

from portal.models import Submission
from portal.utils.helpers import generate_code

CODE_PREFIX = 'AZN'


def class_digits(class_name):
    """'Class 7' -> '7'"""
    return re.sub(r'^\s*class\s*', '', class_name or '', flags=re.IGNORECASE).strip()


def name_initials(student_name):
    return ''.join(part[0].upper() for part in (student_name or '').split() if part)


def generate_student_code(class_name, student_name, serial, rng=None):
    """AZN-<class>-<initials>-<serial>-<suffix>"""
    suffix = generate_code(4, rng)
    return f"{CODE_PREFIX}-{class_digits(class_name)}-{name_initials(student_name)}-{serial:04d}-{suffix}"


def next_serial_for_slot(test_id, slot_number, class_name):
    """count(submissions for test + slot + class) + 1, best effort"""
    count = Submission.query.filter_by(
        test_id=test_id,
        slot_number=slot_number,
        class_applying_for=class_name,
    ).count()
    return count + 1


def unique_code_suffix(rng=None):
    """Fresh per-insert suffix: last 6 digits of the ms clock plus 3 random chars"""
    rng = rng or random
    stamp = str(int(time.time() * 1000))[-6:]
    return f"{stamp}-{generate_code(3, rng)}"
