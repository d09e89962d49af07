"""
Socket.IO Event Handlers
Anti-cheat reports, answers and submission for live test sessions, plus the
per-session countdown task
"""
from functools import wraps
import logging
import threading

from flask import current_app
from flask_socketio import emit, join_room, leave_room

from portal.errors import PortalError, SubmissionError
from portal.extensions import socketio
from portal.services.session import FULLSCREEN_EXIT, TAB_SWITCH, end_session, get_session
from portal.tasks import dispatch_side_effects

logger = logging.getLogger(__name__)

# Sessions with a running countdown task
_countdowns = set()
_countdowns_lock = threading.Lock()


# ================= EMITTERS =================

def announce_submitted(test_session):
    """Send the result to the session room, then drop the finished session"""
    payload = {'session_id': test_session.id, 'submission_id': test_session.submission_id}
    if test_session.outcome is not None:
        payload.update(test_session.outcome._asdict())
    socketio.emit('session_submitted', payload, room=test_session.id)
    end_session(test_session.id)
    logger.info("Session %s finished with submission %s", test_session.id, test_session.submission_id)


def emit_submission_failed(test_session, error):
    socketio.emit('submission_failed', {
        'session_id': test_session.id,
        'error': error.message,
    }, room=test_session.id)


def _violation_payload(test_session, kind):
    return {
        'session_id': test_session.id,
        'kind': kind,
        'violation_count': test_session.violation_count,
        'fullscreen_exit_count': test_session.fullscreen_exit_count,
        'tab_switch_count': test_session.tab_switch_count,
        'warning_seconds': test_session.warning_seconds,
        'violation_limit': test_session.violation_limit,
    }


# ================= COUNTDOWN =================

def start_countdown(app, test_session):
    """One background countdown per session; returns False if already running"""
    with _countdowns_lock:
        if test_session.id in _countdowns:
            return False
        _countdowns.add(test_session.id)
    socketio.start_background_task(_run_countdown, app, test_session)
    return True


def _run_countdown(app, test_session):
    try:
        while test_session.timer_running:
            socketio.sleep(1)
            with app.app_context():
                try:
                    outcome = test_session.tick()
                except SubmissionError as exc:
                    dispatch_side_effects(app)
                    emit_submission_failed(test_session, exc)
                    break

                socketio.emit('tick', {
                    'session_id': test_session.id,
                    'time_left': test_session.time_left,
                    'warning_visible': test_session.warning_visible,
                }, room=test_session.id)

                if outcome is not None:
                    dispatch_side_effects(app)
                    announce_submitted(test_session)
                    break
    finally:
        with _countdowns_lock:
            _countdowns.discard(test_session.id)
        logger.debug("Countdown for session %s stopped", test_session.id)


# ================= HANDLERS =================

def socket_handler(f):
    """Resolve the session from the payload and turn portal errors into an ack"""
    @wraps(f)
    def decorated_function(data=None):
        data = data or {}
        try:
            test_session = get_session(data.get('session_id'))
            return f(test_session, data)
        except PortalError as exc:
            return exc.to_dict()
    return decorated_function


def _after_violation(test_session, kind, action):
    """Run a violation transition, then report the violation and any forced submission"""
    before = test_session.violation_count
    was_submitted = test_session.is_submitted
    failure = None
    try:
        action()
    except SubmissionError as exc:
        failure = exc

    if test_session.violation_count > before:
        emit('violation', _violation_payload(test_session, kind), room=test_session.id)

    submitted_now = test_session.is_submitted and not was_submitted
    if failure is not None or submitted_now:
        dispatch_side_effects(current_app._get_current_object())
    if failure is not None:
        emit_submission_failed(test_session, failure)
    elif submitted_now:
        announce_submitted(test_session)

    return {'success': True, 'counted': test_session.violation_count > before, 'state': test_session.state}


def register_socket_events():
    """Register all Socket.IO event handlers"""

    @socketio.on('join_session')
    @socket_handler
    def join_session(test_session, data):
        """Browser attaches to its session room"""
        join_room(test_session.id)
        emit('session_state', test_session.to_dict())
        logger.info("Client joined session %s", test_session.id)
        return {'success': True}

    @socketio.on('visibility_change')
    @socket_handler
    def visibility_change(test_session, data):
        hidden = bool(data.get('hidden'))
        return _after_violation(test_session, TAB_SWITCH, lambda: test_session.visibility_changed(hidden))

    @socketio.on('fullscreen_change')
    @socket_handler
    def fullscreen_change(test_session, data):
        fullscreen = bool(data.get('fullscreen'))
        return _after_violation(test_session, FULLSCREEN_EXIT, lambda: test_session.fullscreen_changed(fullscreen))

    @socketio.on('key_down')
    @socket_handler
    def key_down(test_session, data):
        """Ack tells the browser whether to cancel the key press"""
        return {'blocked': test_session.key_pressed(data.get('key'), bool(data.get('ctrl')))}

    @socketio.on('browser_event')
    @socket_handler
    def browser_event(test_session, data):
        """Copy / paste / context menu and friends; ack says whether to cancel"""
        return {'blocked': test_session.suppresses(data.get('event'))}

    @socketio.on('answer')
    @socket_handler
    def answer(test_session, data):
        try:
            question_id = int(data.get('question_id'))
        except (TypeError, ValueError):
            return {'success': False, 'error': 'question_id is required'}
        return {'success': test_session.record_answer(question_id, data.get('answer'))}

    @socketio.on('submit')
    @socket_handler
    def submit(test_session, data):
        try:
            outcome = test_session.submit()
        except SubmissionError as exc:
            dispatch_side_effects(current_app._get_current_object())
            emit_submission_failed(test_session, exc)
            return exc.to_dict()

        dispatch_side_effects(current_app._get_current_object())
        if outcome is None:
            return {'success': test_session.is_submitted, 'submission_id': test_session.submission_id}

        announce_submitted(test_session)
        return {'success': True, 'submission_id': outcome.submission_id}

    @socketio.on('leave_session')
    @socket_handler
    def leave_session(test_session, data):
        """Exit: tear listeners down and forget the session"""
        leave_room(test_session.id)
        end_session(test_session.id)
        logger.info("Client left session %s", test_session.id)
        return {'success': True}
