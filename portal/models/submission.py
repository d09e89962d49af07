"""
Submission / Answer Models
Graded attempts and their per-question answers
"""
import json

from portal.extensions import db
from portal.utils.helpers import now_utc, isoformat

STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'
STATUS_AUTO_SUBMITTED = 'auto_submitted'
STATUS_INVALIDATED = 'invalidated_by_retest'

SUBMISSION_STATUSES = (
    STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_AUTO_SUBMITTED, STATUS_INVALIDATED,
)


class Submission(db.Model):
    """Submission model"""
    __tablename__ = 'submissions'

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id'), nullable=False, index=True)
    student_name = db.Column(db.String(200), nullable=False)
    father_name = db.Column(db.String(200))
    class_applying_for = db.Column(db.String(50), nullable=False)
    student_code = db.Column(db.String(100), unique=True, index=True)
    slot_number = db.Column(db.Integer, index=True)

    tab_switch_count = db.Column(db.Integer, default=0)
    time_taken_seconds = db.Column(db.Integer, default=0)
    score = db.Column(db.Integer, default=0)
    total_marks = db.Column(db.Integer, default=0)
    percentage = db.Column(db.Float, default=0)
    correct_count = db.Column(db.Integer, default=0)
    wrong_count = db.Column(db.Integer, default=0)
    needs_manual_review = db.Column(db.Boolean, default=False)
    malpractice_detected = db.Column(db.Boolean, default=False)

    status = db.Column(db.String(30), nullable=False, default=STATUS_IN_PROGRESS)
    # Plain id (no FK): retest_keys already references submissions
    retest_key_used = db.Column(db.Integer, nullable=True)

    submitted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=now_utc)

    answers = db.relationship(
        'Answer', backref='submission', lazy=True, cascade='all, delete-orphan'
    )
    retest_keys = db.relationship(
        'RetestKey', foreign_keys='RetestKey.submission_id',
        backref='submission', lazy=True, cascade='all, delete-orphan'
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('in_progress', 'completed', 'auto_submitted', 'invalidated_by_retest')",
            name='submissions_status_check'
        ),
    )

    def __repr__(self):
        return f'<Submission {self.student_code}: {self.score}/{self.total_marks}>'

    def to_dict(self):
        return {
            'id': self.id,
            'test_id': self.test_id,
            'student_name': self.student_name,
            'father_name': self.father_name,
            'class_applying_for': self.class_applying_for,
            'student_code': self.student_code,
            'slot_number': self.slot_number,
            'tab_switch_count': self.tab_switch_count,
            'time_taken_seconds': self.time_taken_seconds,
            'score': self.score,
            'total_marks': self.total_marks,
            'percentage': self.percentage,
            'correct_count': self.correct_count,
            'wrong_count': self.wrong_count,
            'needs_manual_review': bool(self.needs_manual_review),
            'malpractice_detected': bool(self.malpractice_detected),
            'status': self.status,
            'retest_key_used': self.retest_key_used,
            'submitted_at': isoformat(self.submitted_at),
        }


class Answer(db.Model):
    """Answer to one question within a submission"""
    __tablename__ = 'answers'

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submissions.id'), nullable=False, index=True)
    question_id = db.Column(
        db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False, index=True
    )
    # JSON: string, list or null
    student_answer = db.Column(db.Text)
    # NULL = pending manual review
    is_correct = db.Column(db.Boolean, nullable=True)
    marks_awarded = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=now_utc)

    def __repr__(self):
        return f'<Answer Q{self.question_id} of submission {self.submission_id}>'

    def get_student_answer(self):
        if self.student_answer is None:
            return None
        try:
            return json.loads(self.student_answer)
        except (TypeError, ValueError):
            return self.student_answer

    def set_student_answer(self, value):
        self.student_answer = None if value is None else json.dumps(value)

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'student_answer': self.get_student_answer(),
            'is_correct': self.is_correct,
            'marks_awarded': self.marks_awarded,
        }
