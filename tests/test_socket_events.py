import pytest

from portal.extensions import active_sessions, socketio
from portal.sockets.session_events import _run_countdown


@pytest.fixture
def live_session(client, make_exam, access):
    exam = make_exam()
    code, _ = access(exam)
    response = client.post('/student/enter', json={
        'test_id': exam.id,
        'student_name': 'Ravi Kumar',
        'father_name': 'Suresh Kumar',
        'class_applying_for': 'Class 7',
        'access_code': code,
    })
    return response.get_json()['session']


@pytest.fixture
def sio(app, client):
    sio = socketio.test_client(app, flask_test_client=client)
    yield sio
    if sio.is_connected():
        sio.disconnect()


def received(sio, name):
    return [packet['args'][0] for packet in sio.get_received() if packet['name'] == name]


def join(sio, session_id):
    ack = sio.emit('join_session', {'session_id': session_id}, callback=True)
    assert ack == {'success': True}


def test_join_sends_state(sio, live_session):
    join(sio, live_session['session_id'])

    states = received(sio, 'session_state')
    assert states[0]['state'] == 'active'
    assert states[0]['session_id'] == live_session['session_id']


def test_unknown_session_is_acked_with_error(sio):
    ack = sio.emit('join_session', {'session_id': 'missing'}, callback=True)
    assert ack == {'success': False, 'error': 'Session not found'}


def test_key_policy_ack(sio, live_session):
    session_id = live_session['session_id']
    join(sio, session_id)

    assert sio.emit('key_down', {'session_id': session_id, 'key': 'F5'}, callback=True) == {'blocked': True}
    assert sio.emit('key_down', {'session_id': session_id, 'key': 'a'}, callback=True) == {'blocked': False}
    assert sio.emit('key_down', {'session_id': session_id, 'key': 'F11'}, callback=True) == {'blocked': False}

    sio.emit('fullscreen_change', {'session_id': session_id, 'fullscreen': True}, callback=True)
    assert sio.emit('key_down', {'session_id': session_id, 'key': 'F11'}, callback=True) == {'blocked': True}


def test_browser_event_ack(sio, live_session):
    session_id = live_session['session_id']
    join(sio, session_id)

    assert sio.emit('browser_event', {'session_id': session_id, 'event': 'paste'}, callback=True) == {'blocked': True}
    assert sio.emit('browser_event', {'session_id': session_id, 'event': 'click'}, callback=True) == {'blocked': False}


def test_violations_reach_threshold(sio, live_session):
    session_id = live_session['session_id']
    join(sio, session_id)
    sio.get_received()

    for _ in range(2):
        ack = sio.emit('visibility_change', {'session_id': session_id, 'hidden': True}, callback=True)
        assert ack['counted'] is True
        assert ack['state'] == 'active'

    ack = sio.emit('fullscreen_change', {'session_id': session_id, 'fullscreen': False}, callback=True)
    assert ack['state'] == 'submitted'

    packets = sio.get_received()
    violations = [p['args'][0] for p in packets if p['name'] == 'violation']
    submitted = [p['args'][0] for p in packets if p['name'] == 'session_submitted']

    assert [v['violation_count'] for v in violations] == [1, 2, 3]
    assert violations[-1]['kind'] == 'fullscreen_exit'
    assert len(submitted) == 1
    assert submitted[0]['malpractice_detected'] is True
    assert submitted[0]['status'] == 'auto_submitted'
    assert session_id not in active_sessions


def test_visible_again_is_not_a_violation(sio, live_session):
    session_id = live_session['session_id']
    join(sio, session_id)

    ack = sio.emit('visibility_change', {'session_id': session_id, 'hidden': False}, callback=True)
    assert ack['counted'] is False


def test_answer_and_submit(sio, live_session):
    session_id = live_session['session_id']
    join(sio, session_id)
    question = live_session['questions'][0]

    assert sio.emit('answer', {'session_id': session_id, 'question_id': question['id'], 'answer': 'x'},
                    callback=True) == {'success': True}

    ack = sio.emit('submit', {'session_id': session_id}, callback=True)
    assert ack['success'] is True
    assert received(sio, 'session_submitted')[0]['submission_id'] == ack['submission_id']

    # Finished sessions are dropped from the registry
    assert session_id not in active_sessions
    again = sio.emit('submit', {'session_id': session_id}, callback=True)
    assert again == {'success': False, 'error': 'Session not found'}


def test_countdown_timeout_submits_and_drops_session(app, live_session, monkeypatch):
    session_id = live_session['session_id']
    test_session = active_sessions[session_id]
    test_session.time_left = 2
    monkeypatch.setattr(socketio, 'sleep', lambda seconds: None)

    _run_countdown(app, test_session)

    assert test_session.is_submitted
    assert test_session.outcome.status == 'auto_submitted'
    assert session_id not in active_sessions


def test_leave_session_forgets_it(sio, live_session):
    session_id = live_session['session_id']
    join(sio, session_id)

    assert sio.emit('leave_session', {'session_id': session_id}, callback=True) == {'success': True}
    assert session_id not in active_sessions
