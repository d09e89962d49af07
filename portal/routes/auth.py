"""
Authentication Routes
Admin login against the static shared secret
"""
import hmac
import logging

from flask import Blueprint, current_app, jsonify, request, session

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/')
def index():
    """Health / landing"""
    return jsonify({'success': True, 'service': 'entrance-portal'})


@auth_bp.route('/login', methods=['POST'])
def login():
    """Admin login"""
    data = request.get_json(silent=True) or request.form
    secret = data.get('secret') or ''
    expected = current_app.config.get('ADMIN_SECRET') or ''

    if not expected or not hmac.compare_digest(secret.encode(), expected.encode()):
        logger.warning("Failed admin login from %s", request.remote_addr)
        return jsonify({'success': False, 'error': 'Invalid admin secret'}), 401

    session.clear()
    session['role'] = 'admin'
    logger.info("Admin logged in from %s", request.remote_addr)
    return jsonify({'success': True})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Clear the admin session"""
    session.clear()
    return jsonify({'success': True})
