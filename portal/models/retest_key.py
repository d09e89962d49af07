"""
RetestKey Model
One-time authorization to re-take a test, issued against an earlier submission
"""
from portal.extensions import db
from portal.utils.helpers import now_utc, isoformat


class RetestKey(db.Model):
    """Retest key"""
    __tablename__ = 'retest_keys'

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id'), nullable=False, index=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submissions.id'), nullable=False, index=True)
    slot_number = db.Column(db.Integer, nullable=False)
    student_name = db.Column(db.String(200), nullable=False)
    key = db.Column(db.String(32), nullable=False, unique=True, index=True)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_by_submission_id = db.Column(
        db.Integer, db.ForeignKey('submissions.id', ondelete='SET NULL'), nullable=True
    )
    created_at = db.Column(db.DateTime, default=now_utc)
    expires_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self):
        return f'<RetestKey {self.key} for {self.student_name}>'

    def is_expired(self, now=None):
        return self.expires_at <= (now or now_utc())

    def to_dict(self):
        return {
            'id': self.id,
            'test_id': self.test_id,
            'submission_id': self.submission_id,
            'slot_number': self.slot_number,
            'student_name': self.student_name,
            'key': self.key,
            'is_used': bool(self.is_used),
            'used_by_submission_id': self.used_by_submission_id,
            'created_at': isoformat(self.created_at),
            'expires_at': isoformat(self.expires_at),
            'is_expired': self.is_expired(),
        }
