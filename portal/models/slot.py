"""
Slot / AccessCode Models
Fixed-width time windows per test and the rotating codes that gate entry
"""
from portal.extensions import db
from portal.utils.helpers import now_utc


class Slot(db.Model):
    """Time slot for a test"""
    __tablename__ = 'slots'

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id'), nullable=False, index=True)
    slot_number = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=120)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=now_utc)

    access_codes = db.relationship(
        'AccessCode', backref='slot', lazy=True,
        order_by='AccessCode.valid_until', cascade='all, delete-orphan'
    )

    __table_args__ = (
        db.UniqueConstraint('test_id', 'slot_number', name='unique_slot_per_test'),
    )

    def __repr__(self):
        return f'<Slot {self.slot_number} of test {self.test_id}>'


class AccessCode(db.Model):
    """Access code bound to a slot"""
    __tablename__ = 'access_codes'

    id = db.Column(db.Integer, primary_key=True)
    slot_id = db.Column(db.Integer, db.ForeignKey('slots.id'), nullable=False, index=True)
    code = db.Column(db.String(12), nullable=False, unique=True)
    valid_until = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=now_utc)

    def __repr__(self):
        return f'<AccessCode {self.code}>'

    def is_valid(self, now=None):
        return (now or now_utc()) < self.valid_until
