"""
Exam Administration
Create / update tests with their questions, publishing and dashboard counters
"""
import logging

from portal.errors import NotFoundError, ValidationError
from portal.extensions import db
from portal.models import Answer, Exam, Question, Submission
from portal.models.question import CHOICE_TYPES, QUESTION_TYPES
from portal.store import atomic

logger = logging.getLogger(__name__)


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clean_questions(raw_questions):
    """Validate question payloads, returning them in display order"""
    if not raw_questions:
        raise ValidationError('Please add at least one question')

    cleaned = []
    for number, raw in enumerate(raw_questions, start=1):
        text = (raw.get('question_text') or '').strip()
        if not text:
            raise ValidationError('All questions must have text')

        kind = raw.get('question_type') or 'mcq_single'
        if kind not in QUESTION_TYPES:
            raise ValidationError(f'Unknown question type: {kind}')

        options = [str(opt) for opt in (raw.get('options') or [])]
        correct_answers = list(raw.get('correct_answers') or [])
        if kind in CHOICE_TYPES and not set(map(str, correct_answers)) <= set(options):
            raise ValidationError(f'Question {number}: correct answers must be among the options')

        cleaned.append({
            'id': _as_int(raw.get('id'), None),
            'number': number,
            'question_type': kind,
            'question_text': text,
            'options': options,
            'correct_answers': correct_answers,
            'marks': max(0, _as_int(raw.get('marks'), 1)),
            'is_case_sensitive': bool(raw.get('is_case_sensitive', False)),
        })
    return cleaned


def _apply(question, data):
    question.number = data['number']
    question.question_type = data['question_type']
    question.question_text = data['question_text']
    question.set_options(data['options'])
    question.set_correct_answers(data['correct_answers'])
    question.marks = data['marks']
    question.is_case_sensitive = data['is_case_sensitive']


def get_exam(exam_id):
    exam = db.session.get(Exam, exam_id)
    if not exam:
        raise NotFoundError('Test not found')
    return exam


def save_exam(payload, exam=None):
    """
    Create a test, or update `exam` in place, from an admin payload.

    Questions missing from an update are deleted unless students have already
    answered them. Total marks always equal the sum of question marks.
    """
    title = (payload.get('title') or '').strip()
    if not title:
        raise ValidationError('Please enter a test title')

    questions = _clean_questions(payload.get('questions'))
    total_marks = sum(q['marks'] for q in questions)

    with atomic() as session:
        if exam is None:
            exam = Exam()
            session.add(exam)

        exam.title = title
        exam.description = payload.get('description') or ''
        exam.duration_minutes = max(1, _as_int(payload.get('duration_minutes'), 60))
        exam.passing_percentage = _as_int(payload.get('passing_percentage'), 40)
        exam.total_marks = total_marks
        session.flush()

        existing = {q.id: q for q in Question.query.filter_by(test_id=exam.id).all()}
        kept_ids = {q['id'] for q in questions if q['id'] in existing}

        removed = [qid for qid in existing if qid not in kept_ids]
        if removed:
            answered = Answer.query.filter(Answer.question_id.in_(removed)).count()
            if answered:
                raise ValidationError('Cannot delete questions that already have student answers.')
            for qid in removed:
                session.delete(existing[qid])

        for data in questions:
            question = existing.get(data['id'])
            if question is None:
                question = Question(test_id=exam.id)
                session.add(question)
            _apply(question, data)

    logger.info("Saved test %s (%s questions, %s marks)", exam.id, len(questions), total_marks)
    return exam


def delete_exam(exam_id):
    """Delete a test with its questions, slots, submissions and retest keys"""
    exam = get_exam(exam_id)
    with atomic() as session:
        session.delete(exam)
    logger.info("Deleted test %s", exam_id)


def toggle_publish(exam_id):
    exam = get_exam(exam_id)
    with atomic():
        exam.is_published = not exam.is_published
    logger.info("Test %s published=%s", exam_id, exam.is_published)
    return exam


def published_exams():
    return Exam.query.filter_by(is_published=True).order_by(Exam.created_at.desc()).all()


def all_exams():
    return Exam.query.order_by(Exam.created_at.desc(), Exam.id.desc()).all()


def question_count(exam_id):
    return Question.query.filter_by(test_id=exam_id).count()


def dashboard_counts():
    return {
        'total_tests': Exam.query.count(),
        'published_tests': Exam.query.filter_by(is_published=True).count(),
        'total_submissions': Submission.query.count(),
    }
