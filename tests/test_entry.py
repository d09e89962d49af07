import pytest

from portal.errors import ValidationError
from portal.services.entry import admit_student, resolve_retest_key


@pytest.fixture
def exam(make_exam):
    return make_exam()


@pytest.fixture
def form(exam, access):
    code, slot_number = access(exam)
    return {
        'test_id': str(exam.id),
        'student_name': '  Ravi Kumar ',
        'father_name': 'Suresh Kumar',
        'class_applying_for': 'Class 7',
        'access_code': code.lower(),
        '_slot_number': slot_number,
    }


def test_admits_valid_form(form):
    admission = admit_student(form)

    assert admission.test_id == int(form['test_id'])
    assert admission.student_name == 'Ravi Kumar'
    assert admission.slot_number == form['_slot_number']
    assert admission.retest_key_id is None
    assert not admission.is_master_key


@pytest.mark.parametrize('field', ['test_id', 'student_name', 'father_name', 'class_applying_for'])
def test_required_fields(form, field):
    form[field] = ''
    with pytest.raises(ValidationError, match='Please fill all required fields'):
        admit_student(form)


def test_missing_access_code(form):
    form['access_code'] = '   '
    with pytest.raises(ValidationError, match='access code'):
        admit_student(form)


def test_unknown_class(form):
    form['class_applying_for'] = 'Class 13'
    with pytest.raises(ValidationError):
        admit_student(form)


def test_unpublished_test(make_exam, access, form):
    draft = make_exam(published=False)
    code, _ = access(draft)
    form.update(test_id=draft.id, access_code=code)
    with pytest.raises(ValidationError, match='not available'):
        admit_student(form)


def test_wrong_access_code(form):
    form['access_code'] = 'WRONG1'
    with pytest.raises(ValidationError, match='Code not found'):
        admit_student(form)


def test_repeat_attempt_blocked(exam, form, make_submission):
    make_submission(exam, slot_number=form['_slot_number'])

    with pytest.raises(ValidationError, match='already attempted'):
        admit_student(form)


def test_auto_submitted_attempt_does_not_block(exam, form, make_submission):
    make_submission(exam, slot_number=form['_slot_number'], status='auto_submitted')

    assert admit_student(form).slot_number == form['_slot_number']


def test_retest_key_bypasses_repeat_check(exam, form, make_submission, make_retest_key):
    previous = make_submission(exam, slot_number=form['_slot_number'])
    retest_key = make_retest_key(previous)

    admission = admit_student(dict(form, retest_key='RETEST01'))
    assert admission.retest_key_id == retest_key.id


def test_master_key_bypasses_repeat_check(exam, form, make_submission):
    make_submission(exam, slot_number=form['_slot_number'])

    admission = admit_student(dict(form, retest_key='MASTER-OVERRIDE'))
    assert admission.is_master_key
    assert admission.retest_key_id is None


def test_invalid_retest_key(form):
    with pytest.raises(ValidationError, match='Invalid or expired retest key'):
        admit_student(dict(form, retest_key='NOPE1234'))


def test_resolve_retest_key_globally(exam, form, make_submission, make_retest_key):
    make_retest_key(make_submission(exam, slot_number=form['_slot_number']))

    check = resolve_retest_key('RETEST01')
    assert check.test_id == int(form['test_id'])
    assert check.student_name == 'Ravi Kumar'

    with pytest.raises(ValidationError, match='select a test first'):
        resolve_retest_key('NOPE1234')
    with pytest.raises(ValidationError, match='Enter a key'):
        resolve_retest_key('  ')
