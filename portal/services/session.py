"""
Test Session
Server-side state machine for one student's attempt:
loading -> active -> submitting -> submitted.

The browser reports visibility / fullscreen / key events over Socket.IO and a
background task calls `tick()` once per second. Counters live on the session and
are only changed through the transition methods below; `submit()` reads them
from a snapshot taken after the in-flight gate.
"""
from collections import namedtuple
from dataclasses import dataclass
import logging
import random
import threading
import time
from typing import Any, Tuple
import uuid

from portal.errors import NotFoundError, SubmissionError, ValidationError
from portal.extensions import active_sessions, db, side_effects
from portal.models import Exam, Question
from portal.models.question import CHOICE_TYPES
from portal.models.submission import STATUS_AUTO_SUBMITTED, STATUS_COMPLETED
from portal.services.evaluation import calculate_results, evaluate, percentage_of
from portal.services.retests import invalidate_previous_submission, mark_retest_key_as_used
from portal.services.slots import get_or_create_slot
from portal.services.student_codes import generate_student_code, next_serial_for_slot
from portal.services.submissions import AnswerRow, write_submission
from portal.utils.helpers import now_utc

logger = logging.getLogger(__name__)

LOADING = 'loading'
ACTIVE = 'active'
SUBMITTING = 'submitting'
SUBMITTED = 'submitted'

TAB_SWITCH = 'tab_switch'
FULLSCREEN_EXIT = 'fullscreen_exit'

# Browser events cancelled for the whole session
SUPPRESSED_EVENTS = ('contextmenu', 'copy', 'cut', 'paste', 'selectstart')

Snapshot = namedtuple('Snapshot', ['questions', 'answers', 'violation_count', 'time_taken_seconds'])

SubmissionOutcome = namedtuple(
    'SubmissionOutcome',
    [
        'submission_id', 'student_code', 'status', 'score', 'total_marks',
        'percentage', 'correct_count', 'wrong_count', 'needs_manual_review',
        'malpractice_detected', 'attempts',
    ],
)


def shuffled(sequence, rng=None):
    """Uniform Fisher-Yates shuffle into a new list"""
    rng = rng or random
    items = list(sequence)
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


def is_blocked_key(key, ctrl=False, fullscreen=False):
    """
    Keyboard policy: refresh (F5 / Ctrl+R) and Escape are always blocked; F11 only
    while in fullscreen, so it can still be used to enter fullscreen.
    """
    key = key or ''
    if key == 'F5' or (ctrl and key.lower() == 'r'):
        return True
    if key == 'Escape':
        return True
    if key == 'F11':
        return bool(fullscreen)
    return False


@dataclass(frozen=True)
class SessionQuestion:
    """Question as seen by one session (display order of options may be shuffled)"""
    id: int
    number: int
    question_type: str
    text: str
    options: Tuple[str, ...]
    marks: int
    variant: Any

    @classmethod
    def from_model(cls, question, rng=None):
        options = question.get_options()
        # True/false options keep their fixed order
        if question.question_type in CHOICE_TYPES and len(options) > 1:
            options = shuffled(options, rng)
        return cls(
            id=question.id,
            number=question.number,
            question_type=question.question_type,
            text=question.question_text,
            options=tuple(options),
            marks=question.marks or 0,
            variant=question.variant,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'number': self.number,
            'question_type': self.question_type,
            'question_text': self.text,
            'options': list(self.options),
            'marks': self.marks,
        }


class TestSession:
    """One student's timed, supervised attempt"""

    def __init__(self, test_id, student_name, father_name, class_applying_for,
                 slot_number=None, retest_key_id=None, is_master_key=False,
                 queue=None, clock=None, rng=None, suffix_factory=None,
                 violation_limit=2, warning_seconds=5, max_submit_attempts=3,
                 session_id=None):
        self.id = session_id or uuid.uuid4().hex
        self.test_id = test_id
        self.student_name = student_name
        self.father_name = father_name
        self.class_applying_for = class_applying_for
        self.slot_number = slot_number
        self.retest_key_id = retest_key_id
        self.is_master_key = bool(is_master_key)

        self.violation_limit = violation_limit
        self.warning_seconds = warning_seconds
        self.max_submit_attempts = max_submit_attempts

        self._queue = queue if queue is not None else side_effects
        self._clock = clock or time.monotonic
        self._rng = rng
        self._suffix_factory = suffix_factory
        self._gate = threading.Lock()

        self.state = LOADING
        self.title = None
        self.student_code = None
        self.questions = []
        self._question_ids = set()
        self.answers = {}
        self.time_left = 0
        self.started_at = None
        self._started_clock = None

        self.fullscreen = False
        self.violation_count = 0
        self.fullscreen_exit_count = 0
        self.tab_switch_count = 0
        self._warning_until = None

        self.listeners_installed = False
        self.timer_running = False

        self.submission_id = None
        self.outcome = None
        self.last_error = None

    def __repr__(self):
        return f'<TestSession {self.id} {self.student_name} [{self.state}]>'

    @classmethod
    def from_admission(cls, admission, **kwargs):
        return cls(
            admission.test_id,
            admission.student_name,
            admission.father_name,
            admission.class_applying_for,
            slot_number=admission.slot_number,
            retest_key_id=admission.retest_key_id,
            is_master_key=admission.is_master_key,
            **kwargs
        )

    # ================= LIFECYCLE =================

    @property
    def uses_retest(self):
        return bool(self.retest_key_id) or self.is_master_key

    @property
    def is_active(self):
        return self.state == ACTIVE

    @property
    def is_submitted(self):
        return self.state == SUBMITTED

    def load(self):
        """Fetch the test, bind slot and student code, shuffle questions, go active"""
        exam = db.session.get(Exam, self.test_id)
        if not exam:
            raise NotFoundError('Test not found')

        self.title = exam.title
        self.time_left = exam.get_total_time_seconds()

        slot = get_or_create_slot(self.test_id)
        if self.slot_number is None:
            self.slot_number = slot.slot_number

        serial = next_serial_for_slot(self.test_id, self.slot_number, self.class_applying_for)
        self.student_code = generate_student_code(
            self.class_applying_for, self.student_name, serial, self._rng
        )

        rows = Question.query.filter_by(test_id=self.test_id).order_by(Question.number).all()
        self.questions = [SessionQuestion.from_model(q, self._rng) for q in shuffled(rows, self._rng)]
        self._question_ids = {q.id for q in self.questions}

        logger.debug("Session %s question order: %s", self.id, [q.number for q in self.questions])

        self.started_at = now_utc()
        self._started_clock = self._clock()
        self.state = ACTIVE
        self.install_listeners()

        logger.info("Session %s started for %s on test %s (slot %s, code %s)",
                    self.id, self.student_name, self.test_id, self.slot_number, self.student_code)
        return self

    def install_listeners(self):
        self.listeners_installed = True
        self.timer_running = True
        return self.anticheat_policy()

    def teardown(self):
        """Remove listeners, stop the countdown and cancel a pending warning banner"""
        self.listeners_installed = False
        self.timer_running = False
        self._warning_until = None

    def anticheat_policy(self):
        return {
            'suppressed_events': list(SUPPRESSED_EVENTS),
            'blocked_keys': ['F5', 'Ctrl+R', 'Escape'],
            'blocked_keys_in_fullscreen': ['F11'],
            'violation_limit': self.violation_limit,
            'warning_seconds': self.warning_seconds,
        }

    # ================= STUDENT INPUT =================

    def record_answer(self, question_id, answer):
        if self.state != ACTIVE:
            return False
        if question_id not in self._question_ids:
            raise ValidationError('Unknown question')
        self.answers[question_id] = answer
        return True

    # ================= TIMER =================

    def tick(self):
        """
        Advance the countdown by one second. Reaching zero submits automatically.

        Returns:
            SubmissionOutcome when this tick submitted, else None
        """
        if not self.timer_running or self.state != ACTIVE or self.time_left <= 0:
            return None
        self.time_left -= 1
        if self.time_left == 0:
            logger.info("Session %s timed out, auto-submitting", self.id)
            return self.submit(auto=True)
        return None

    # ================= ANTI-CHEAT =================

    def _listening(self):
        return self.listeners_installed and self.state in (ACTIVE, SUBMITTING)

    def suppresses(self, event_name):
        return self._listening() and event_name in SUPPRESSED_EVENTS

    def key_pressed(self, key, ctrl=False):
        """True when the key press must be cancelled"""
        if not self._listening():
            return False
        return is_blocked_key(key, ctrl, self.fullscreen)

    def visibility_changed(self, hidden):
        if not hidden or not self._listening():
            return False
        self.tab_switch_count += 1
        return self._record_violation(TAB_SWITCH)

    def fullscreen_changed(self, fullscreen):
        if not self._listening():
            return False
        self.fullscreen = bool(fullscreen)
        if self.fullscreen:
            return False
        self.fullscreen_exit_count += 1
        return self._record_violation(FULLSCREEN_EXIT)

    def _record_violation(self, kind):
        self.violation_count += 1
        self._warning_until = self._clock() + self.warning_seconds
        logger.warning("Session %s violation %s (#%s, fullscreen exits %s)",
                       self.id, kind, self.violation_count, self.fullscreen_exit_count)

        if self.fullscreen_exit_count > self.violation_limit or self.violation_count > self.violation_limit:
            self.submit(auto=True, forced_malpractice=True)
        return True

    @property
    def warning_visible(self):
        return self._warning_until is not None and self._clock() < self._warning_until

    # ================= SUBMISSION =================

    def snapshot(self):
        time_taken = int(self._clock() - self._started_clock) if self._started_clock is not None else 0
        return Snapshot(
            tuple(self.questions),
            dict(self.answers),
            self.violation_count,
            max(0, time_taken),
        )

    def submit(self, auto=False, forced_malpractice=False):
        """
        Grade and persist the attempt. Only one call proceeds; calls made while a
        submission is in flight, or after it finished, return None.

        Raises:
            SubmissionError: on a hard failure; the session returns to active so
            the student can retry
        """
        with self._gate:
            if self.state != ACTIVE:
                logger.info("Submit ignored for session %s in state %s", self.id, self.state)
                return None
            self.state = SUBMITTING

        try:
            outcome = self._write(self.snapshot(), auto, forced_malpractice)
        except Exception as exc:
            with self._gate:
                self.state = ACTIVE
            self.last_error = getattr(exc, 'message', None) or str(exc)
            logger.exception("Session %s submission failed", self.id)
            if isinstance(exc, SubmissionError):
                raise
            raise SubmissionError(
                f'Error submitting test: {self.last_error}. Please contact invigilator.'
            ) from exc

        self.submission_id = outcome.submission_id
        self.outcome = outcome
        self.last_error = None
        self.state = SUBMITTED
        self.teardown()
        return outcome

    def _write(self, snapshot, auto, forced_malpractice):
        evaluations = [evaluate(q, snapshot.answers.get(q.id)) for q in snapshot.questions]
        results = calculate_results(evaluations)
        total_marks = sum(q.marks for q in snapshot.questions)
        percentage = percentage_of(results.score, total_marks)
        malpractice = forced_malpractice or snapshot.violation_count > 0
        status = STATUS_AUTO_SUBMITTED if auto else STATUS_COMPLETED

        if self.uses_retest:
            self._queue.enqueue(
                'invalidate_previous_submission',
                invalidate_previous_submission,
                self.test_id, self.slot_number, self.student_name, self.father_name,
                self.retest_key_id, submitted_before=self.started_at,
            )

        fields = {
            'test_id': self.test_id,
            'student_name': self.student_name,
            'father_name': self.father_name,
            'class_applying_for': self.class_applying_for,
            'slot_number': self.slot_number,
            'tab_switch_count': snapshot.violation_count,
            'time_taken_seconds': snapshot.time_taken_seconds,
            'score': results.score,
            'total_marks': total_marks,
            'percentage': round(percentage, 2),
            'correct_count': results.correct_count,
            'wrong_count': results.wrong_count,
            'needs_manual_review': results.needs_manual_review,
            'malpractice_detected': malpractice,
            'status': status,
            'submitted_at': now_utc(),
            'retest_key_used': self.retest_key_id,
        }
        rows = [
            AnswerRow(q.id, snapshot.answers.get(q.id), ev.is_correct, ev.marks_awarded)
            for q, ev in zip(snapshot.questions, evaluations)
        ]

        written = write_submission(
            fields, rows, self.student_code,
            max_attempts=self.max_submit_attempts,
            suffix_factory=self._suffix_factory,
        )

        if self.retest_key_id and not self.is_master_key:
            self._queue.enqueue(
                'mark_retest_key_as_used',
                mark_retest_key_as_used,
                self.retest_key_id, written.submission_id,
            )

        return SubmissionOutcome(
            written.submission_id, written.student_code, status,
            results.score, total_marks, percentage,
            results.correct_count, results.wrong_count, results.needs_manual_review,
            malpractice, written.attempts,
        )

    # ================= VIEW =================

    def to_dict(self, include_questions=False):
        data = {
            'session_id': self.id,
            'test_id': self.test_id,
            'title': self.title,
            'state': self.state,
            'student_name': self.student_name,
            'student_code': self.student_code,
            'slot_number': self.slot_number,
            'time_left': self.time_left,
            'fullscreen': self.fullscreen,
            'violation_count': self.violation_count,
            'fullscreen_exit_count': self.fullscreen_exit_count,
            'tab_switch_count': self.tab_switch_count,
            'warning_visible': self.warning_visible,
            'answered': len(self.answers),
            'total_questions': len(self.questions),
            'submission_id': self.submission_id,
            'last_error': self.last_error,
        }
        if include_questions:
            data['questions'] = [q.to_dict() for q in self.questions]
            data['anticheat'] = self.anticheat_policy()
        return data


# ================= REGISTRY =================

def settings_from_config(config):
    """TestSession keyword arguments taken from app config"""
    return {
        'violation_limit': config.get('VIOLATION_LIMIT', 2),
        'warning_seconds': config.get('WARNING_BANNER_SECONDS', 5),
        'max_submit_attempts': config.get('SUBMIT_MAX_ATTEMPTS', 3),
    }


def register_session(session):
    active_sessions[session.id] = session
    return session


def get_session(session_id):
    session = active_sessions.get(session_id)
    if session is None:
        raise NotFoundError('Session not found')
    return session


def end_session(session_id):
    """Tear down and forget a session"""
    session = active_sessions.pop(session_id, None)
    if session is not None:
        session.teardown()
    return session
