"""
Exam Model
An entrance test ("tests" table) owning its questions, slots and submissions
"""
from portal.extensions import db
from portal.utils.helpers import now_utc


class Exam(db.Model):
    """Entrance test"""
    __tablename__ = 'tests'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default='')
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    total_marks = db.Column(db.Integer, default=0)
    passing_percentage = db.Column(db.Integer, default=40)
    is_published = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=now_utc)
    updated_at = db.Column(db.DateTime, default=now_utc, onupdate=now_utc)

    # Deleting a test removes everything hanging off it
    questions = db.relationship(
        'Question', backref='exam', lazy=True,
        order_by='Question.number', cascade='all, delete-orphan'
    )
    slots = db.relationship(
        'Slot', backref='exam', lazy=True, cascade='all, delete-orphan'
    )
    submissions = db.relationship(
        'Submission', backref='exam', lazy=True, cascade='all, delete-orphan'
    )
    retest_keys = db.relationship(
        'RetestKey', backref='exam', lazy=True, cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f'<Exam {self.title}>'

    def get_total_time_seconds(self):
        """Countdown seed for a session"""
        return (self.duration_minutes or 0) * 60

    def has_passed(self, percentage):
        return percentage >= (self.passing_percentage or 0)

    def to_dict(self, question_count=None):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description or '',
            'duration_minutes': self.duration_minutes,
            'total_marks': self.total_marks,
            'passing_percentage': self.passing_percentage,
            'is_published': bool(self.is_published),
        }
        if question_count is not None:
            data['question_count'] = question_count
        return data
