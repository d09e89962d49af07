"""
Admin Routes
Dashboard, test management, access codes, submissions and retest keys
"""
import logging

from flask import Blueprint, jsonify, request

from portal.errors import ValidationError
from portal.services.exams import (
    all_exams,
    dashboard_counts,
    delete_exam,
    get_exam,
    question_count,
    save_exam,
    toggle_publish,
)
from portal.services.retests import delete_retest_key, issue_retest_key, list_retest_keys
from portal.services.slots import current_access_code, current_slot_number
from portal.services.submissions import recent_submissions, submission_report, submissions_for_test
from portal.utils.helpers import isoformat, require_admin, utc_to_local

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON body required')
    return data


@admin_bp.route('/dashboard')
@require_admin
def dashboard():
    """Admin dashboard"""
    counts = dashboard_counts()
    counts['current_slot'] = current_slot_number()
    return jsonify({'success': True, **counts})


# ================= TESTS =================

@admin_bp.route('/tests', methods=['GET'])
@require_admin
def list_tests():
    tests = [exam.to_dict(question_count=question_count(exam.id)) for exam in all_exams()]
    return jsonify({'success': True, 'tests': tests})


@admin_bp.route('/tests', methods=['POST'])
@require_admin
def create_test():
    exam = save_exam(_payload())
    return jsonify({'success': True, 'test': exam.to_dict(question_count=len(exam.questions))}), 201


@admin_bp.route('/tests/<int:test_id>', methods=['GET'])
@require_admin
def get_test(test_id):
    exam = get_exam(test_id)
    data = exam.to_dict(question_count=len(exam.questions))
    data['questions'] = [q.to_dict() for q in exam.questions]
    return jsonify({'success': True, 'test': data})


@admin_bp.route('/tests/<int:test_id>', methods=['PUT'])
@require_admin
def update_test(test_id):
    exam = save_exam(_payload(), get_exam(test_id))
    return jsonify({'success': True, 'test': exam.to_dict(question_count=len(exam.questions))})


@admin_bp.route('/tests/<int:test_id>', methods=['DELETE'])
@require_admin
def remove_test(test_id):
    delete_exam(test_id)
    return jsonify({'success': True})


@admin_bp.route('/tests/<int:test_id>/publish', methods=['POST'])
@require_admin
def publish_test(test_id):
    exam = toggle_publish(test_id)
    return jsonify({'success': True, 'is_published': bool(exam.is_published)})


@admin_bp.route('/tests/<int:test_id>/access-code')
@require_admin
def access_code(test_id):
    """Current slot's access code, minted on first request in the slot"""
    get_exam(test_id)
    info = current_access_code(test_id)
    info['valid_until_local'] = utc_to_local(info['valid_until']).strftime('%I:%M %p')
    for field in ('slot_start', 'slot_end', 'valid_until'):
        info[field] = isoformat(info[field])
    return jsonify({'success': True, **info})


# ================= SUBMISSIONS =================

@admin_bp.route('/tests/<int:test_id>/submissions')
@require_admin
def test_submissions(test_id):
    exam = get_exam(test_id)
    submissions = [s.to_dict() for s in submissions_for_test(test_id)]
    return jsonify({'success': True, 'test': exam.to_dict(), 'submissions': submissions})


@admin_bp.route('/submissions/<int:submission_id>')
@require_admin
def submission_detail(submission_id):
    return jsonify({'success': True, 'submission': submission_report(submission_id)})


# ================= RETEST KEYS =================

@admin_bp.route('/retest-keys', methods=['GET'])
@require_admin
def retest_keys():
    """Issued keys plus recent submissions to issue new ones from"""
    return jsonify({
        'success': True,
        'keys': [key.to_dict() for key in list_retest_keys()],
        'recent_submissions': [s.to_dict() for s in recent_submissions()],
    })


@admin_bp.route('/retest-keys', methods=['POST'])
@require_admin
def create_retest_key():
    data = _payload()
    try:
        submission_id = int(data.get('submission_id'))
    except (TypeError, ValueError):
        raise ValidationError('submission_id is required')

    retest_key = issue_retest_key(submission_id)
    return jsonify({'success': True, 'key': retest_key.to_dict()}), 201


@admin_bp.route('/retest-keys/<int:key_id>', methods=['DELETE'])
@require_admin
def remove_retest_key(key_id):
    delete_retest_key(key_id)
    return jsonify({'success': True})
