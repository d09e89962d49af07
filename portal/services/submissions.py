"""
Submission Writer
Persists a graded attempt together with its answers. Each attempt runs in one
transaction: the submission is flushed, its answers are added, and both commit
together, so a failed answers insert never leaves an orphaned submission.
"""
from collections import namedtuple
import logging

from portal.errors import NotFoundError, SubmissionError, UniqueViolation
from portal.extensions import db
from portal.models import Answer, Exam, RetestKey, Submission
from portal.services.student_codes import unique_code_suffix
from portal.store import atomic

logger = logging.getLogger(__name__)

FALLBACK_CODE = 'FALLBACK'

WrittenSubmission = namedtuple('WrittenSubmission', ['submission_id', 'student_code', 'attempts'])

AnswerRow = namedtuple('AnswerRow', ['question_id', 'student_answer', 'is_correct', 'marks_awarded'])


def write_submission(fields, answer_rows, base_code, max_attempts=3, suffix_factory=None):
    """
    Insert a submission and its answers.

    A fresh suffix is appended to `base_code` on every attempt. Only a uniqueness
    violation is retried; any other storage error aborts at once.

    Args:
        fields: Submission column values (without student_code)
        answer_rows: iterable of AnswerRow
        base_code: student code generated at session start

    Returns:
        WrittenSubmission

    Raises:
        SubmissionError: when every attempt collided
        StorageError: on any other database failure
    """
    suffix_factory = suffix_factory or unique_code_suffix
    answer_rows = list(answer_rows)

    for attempt in range(1, max_attempts + 1):
        student_code = f"{base_code or FALLBACK_CODE}-{suffix_factory()}"
        try:
            with atomic() as session:
                submission = Submission(student_code=student_code, **fields)
                session.add(submission)
                session.flush()
                submission_id = submission.id

                for row in answer_rows:
                    answer = Answer(
                        submission_id=submission_id,
                        question_id=row.question_id,
                        is_correct=row.is_correct,
                        marks_awarded=row.marks_awarded,
                    )
                    answer.set_student_answer(row.student_answer)
                    session.add(answer)
        except UniqueViolation:
            logger.warning("Attempt %s: duplicate student code %s, retrying", attempt, student_code)
            continue

        logger.info("Recorded submission %s (%s) on attempt %s", submission_id, student_code, attempt)
        return WrittenSubmission(submission_id, student_code, attempt)

    raise SubmissionError(f'Failed to create submission after {max_attempts} attempts.')


# ================= READ SIDE =================

def get_submission(submission_id):
    submission = db.session.get(Submission, submission_id)
    if not submission:
        raise NotFoundError('Submission not found')
    return submission


def submissions_for_test(test_id):
    return (
        Submission.query
        .filter_by(test_id=test_id)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .all()
    )


def recent_submissions(limit=50):
    return Submission.query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).limit(limit).all()


def submission_report(submission_id):
    """
    Submission with its answers (joined to their questions), the retest key string
    when one was used, and pass/fail against the test's passing percentage.
    """
    submission = get_submission(submission_id)
    exam = db.session.get(Exam, submission.test_id)

    answers = []
    for answer in sorted(submission.answers, key=lambda a: (a.question.number, a.id)):
        data = answer.to_dict()
        data['question'] = answer.question.to_dict()
        answers.append(data)

    retest_key = None
    if submission.retest_key_used:
        key = db.session.get(RetestKey, submission.retest_key_used)
        retest_key = key.key if key else None

    report = submission.to_dict()
    report.update({
        'test_title': exam.title if exam else None,
        'passing_percentage': exam.passing_percentage if exam else None,
        'passed': exam.has_passed(submission.percentage or 0) if exam else False,
        'answers': answers,
        'retest_key': retest_key,
    })
    return report
