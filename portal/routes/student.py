"""
Student Routes
Test list, entry form, session snapshot, answers and submission
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from portal.errors import SubmissionError, ValidationError
from portal.services.entry import CLASSES, admit_student, resolve_retest_key
from portal.services.exams import published_exams, question_count
from portal.services.session import (
    TestSession,
    get_session,
    register_session,
    settings_from_config,
)
from portal.services.submissions import get_submission
from portal.sockets.session_events import announce_submitted, start_countdown
from portal.tasks import dispatch_side_effects

logger = logging.getLogger(__name__)

student_bp = Blueprint('student', __name__)


def _payload():
    return request.get_json(silent=True) or request.form.to_dict()


@student_bp.route('/tests')
def tests():
    """Published tests and the class list for the entry form"""
    exams = [exam.to_dict(question_count=question_count(exam.id)) for exam in published_exams()]
    return jsonify({'success': True, 'tests': exams, 'classes': CLASSES})


@student_bp.route('/retest-key', methods=['POST'])
def retest_key():
    """Check a retest key before entry; resolves test and name when no test is selected"""
    data = _payload()
    check = resolve_retest_key(data.get('key'), data.get('test_id'))
    return jsonify({
        'success': True,
        'is_master_key': check.is_master_key,
        'retest_key_id': check.retest_key_id,
        'test_id': check.test_id,
        'slot_number': check.slot_number,
        'student_name': check.student_name,
    })


@student_bp.route('/enter', methods=['POST'])
def enter():
    """Validate the entry form and start a session"""
    admission = admit_student(_payload())

    test_session = TestSession.from_admission(admission, **settings_from_config(current_app.config))
    test_session.load()
    register_session(test_session)

    if current_app.config.get('COUNTDOWN_ENABLED'):
        start_countdown(current_app._get_current_object(), test_session)

    return jsonify({'success': True, 'session': test_session.to_dict(include_questions=True)}), 201


@student_bp.route('/session/<session_id>')
def session_state(session_id):
    test_session = get_session(session_id)
    return jsonify({'success': True, 'session': test_session.to_dict(include_questions=True)})


@student_bp.route('/session/<session_id>/answer', methods=['POST'])
def answer(session_id):
    test_session = get_session(session_id)
    data = _payload()
    try:
        question_id = int(data.get('question_id'))
    except (TypeError, ValueError):
        raise ValidationError('question_id is required')

    accepted = test_session.record_answer(question_id, data.get('answer'))
    return jsonify({'success': accepted, 'state': test_session.state})


@student_bp.route('/session/<session_id>/submit', methods=['POST'])
def submit(session_id):
    """Manual submission"""
    test_session = get_session(session_id)

    try:
        outcome = test_session.submit()
    finally:
        dispatch_side_effects(current_app._get_current_object())

    if outcome is None:
        if test_session.is_submitted:
            return jsonify({'success': True, 'submission_id': test_session.submission_id})
        return jsonify({'success': False, 'error': 'Submission already in progress'}), 409

    announce_submitted(test_session)
    return jsonify({'success': True, 'submission_id': outcome.submission_id, 'result': outcome._asdict()})


@student_bp.errorhandler(SubmissionError)
def submission_failed(error):
    return jsonify({'success': False, 'error': error.message, 'retry': True}), 500


@student_bp.route('/result/<int:submission_id>')
def result(submission_id):
    """Result summary shown after submission"""
    submission = get_submission(submission_id)
    exam = submission.exam
    data = submission.to_dict()
    data.update({
        'test_title': exam.title,
        'passing_percentage': exam.passing_percentage,
        'passed': exam.has_passed(submission.percentage or 0),
    })
    return jsonify({'success': True, 'result': data})
