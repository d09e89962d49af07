import random
from datetime import timedelta

import pytest

from portal import create_app
from portal.extensions import active_sessions, db, side_effects
from portal.models import Exam, Question, RetestKey, Submission
from portal.models.submission import STATUS_COMPLETED
from portal.services.session import TestSession
from portal.services.slots import current_access_code
from portal.tasks import SideEffectQueue
from portal.utils.helpers import now_utc

DEFAULT_QUESTIONS = [
    {
        'question_type': 'mcq_single',
        'question_text': 'Capital of India?',
        'options': ['Mumbai', 'New Delhi', 'Kolkata', 'Chennai'],
        'correct_answers': ['New Delhi'],
        'marks': 2,
    },
    {
        'question_type': 'mcq_multiple',
        'question_text': 'Select the prime numbers',
        'options': ['2', '4', '5', '9'],
        'correct_answers': ['2', '5'],
        'marks': 2,
    },
    {
        'question_type': 'true_false',
        'question_text': 'The earth orbits the sun.',
        'correct_answers': ['True'],
        'marks': 1,
    },
    {
        'question_type': 'fill_blank',
        'question_text': 'Water freezes at ___ degrees Celsius',
        'correct_answers': ['zero'],
        'marks': 1,
    },
    {
        'question_type': 'numerical',
        'question_text': '6 x 7 = ?',
        'correct_answers': ['42'],
        'marks': 1,
    },
    {
        'question_type': 'paragraph',
        'question_text': 'Describe your favourite book.',
        'marks': 3,
    },
]

# Answers that score full marks on every auto-graded question above
CORRECT_ANSWERS = {
    'Capital of India?': 'New Delhi',
    'Select the prime numbers': ['5', '2'],
    'The earth orbits the sun.': 'True',
    'Water freezes at ___ degrees Celsius': ' Zero ',
    '6 x 7 = ?': '42.0',
}


class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, start=1000.0):
        self.value = start

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    active_sessions.clear()
    side_effects.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess['role'] = 'admin'
    return client


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue():
    return SideEffectQueue()


@pytest.fixture
def make_exam(app):
    def _make(title='Entrance Test', duration_minutes=60, published=True,
              questions=None, passing_percentage=40):
        exam = Exam(
            title=title,
            duration_minutes=duration_minutes,
            is_published=published,
            passing_percentage=passing_percentage,
        )
        db.session.add(exam)
        db.session.flush()

        questions = DEFAULT_QUESTIONS if questions is None else questions
        for number, data in enumerate(questions, start=1):
            question = Question(
                test_id=exam.id,
                number=number,
                question_type=data['question_type'],
                question_text=data.get('question_text', f'Question {number}'),
                marks=data.get('marks', 1),
                is_case_sensitive=data.get('is_case_sensitive', False),
            )
            question.set_options(data.get('options', []))
            question.set_correct_answers(data.get('correct_answers', []))
            db.session.add(question)

        exam.total_marks = sum(data.get('marks', 1) for data in questions)
        db.session.commit()
        return exam
    return _make


@pytest.fixture
def make_submission(app):
    counter = {'n': 0}

    def _make(exam, student_name='Ravi Kumar', father_name='Suresh Kumar',
              class_applying_for='Class 7', slot_number=1, status=STATUS_COMPLETED,
              submitted_at=None, student_code=None, score=5):
        counter['n'] += 1
        submission = Submission(
            test_id=exam.id,
            student_name=student_name,
            father_name=father_name,
            class_applying_for=class_applying_for,
            slot_number=slot_number,
            student_code=student_code or f'SEED-{counter["n"]}',
            status=status,
            score=score,
            total_marks=exam.total_marks,
            submitted_at=submitted_at or now_utc(),
        )
        db.session.add(submission)
        db.session.commit()
        return submission
    return _make


@pytest.fixture
def make_retest_key(app):
    def _make(submission, key='RETEST01', is_used=False, expires_in=timedelta(hours=24)):
        now = now_utc()
        retest_key = RetestKey(
            test_id=submission.test_id,
            submission_id=submission.id,
            slot_number=submission.slot_number,
            student_name=submission.student_name,
            key=key,
            is_used=is_used,
            created_at=now,
            expires_at=now + expires_in,
        )
        db.session.add(retest_key)
        db.session.commit()
        return retest_key
    return _make


@pytest.fixture
def make_session(app, clock, queue):
    def _make(exam, seed=7, **kwargs):
        kwargs.setdefault('slot_number', 1)
        test_session = TestSession(
            exam.id, 'Ravi Kumar', 'Suresh Kumar', 'Class 7',
            queue=queue, clock=clock, rng=random.Random(seed), **kwargs
        )
        return test_session.load()
    return _make


@pytest.fixture
def access(app):
    """Current access code and slot number for a test"""
    def _access(exam):
        info = current_access_code(exam.id)
        return info['code'], info['slot_number']
    return _access


def answer_all_correctly(test_session):
    for question in test_session.questions:
        if question.text in CORRECT_ANSWERS:
            test_session.record_answer(question.id, CORRECT_ANSWERS[question.text])


@pytest.fixture
def answer_correctly():
    return answer_all_correctly
