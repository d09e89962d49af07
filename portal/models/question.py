"""
Question Model
Stores option / answer payloads as JSON text and decodes them into
kind-specific variants for grading.
"""
from dataclasses import dataclass
import json
from typing import Optional, Tuple

from portal.extensions import db

MCQ_SINGLE = 'mcq_single'
MCQ_MULTIPLE = 'mcq_multiple'
FILL_BLANK = 'fill_blank'
TRUE_FALSE = 'true_false'
NUMERICAL = 'numerical'
SHORT_ANSWER = 'short_answer'
PARAGRAPH = 'paragraph'

QUESTION_TYPES = (
    MCQ_SINGLE, MCQ_MULTIPLE, FILL_BLANK, TRUE_FALSE,
    NUMERICAL, SHORT_ANSWER, PARAGRAPH,
)
CHOICE_TYPES = (MCQ_SINGLE, MCQ_MULTIPLE)
FREE_TEXT_TYPES = (SHORT_ANSWER, PARAGRAPH)

TRUE_FALSE_OPTIONS = ['True', 'False']


# ================= VARIANTS =================

@dataclass(frozen=True)
class ChoiceVariant:
    options: Tuple[str, ...]
    # Stored answers, kept even when no option matches them
    correct_values: Tuple[str, ...]
    multiple: bool = False


@dataclass(frozen=True)
class TrueFalseVariant:
    correct: Optional[str]


@dataclass(frozen=True)
class FillBlankVariant:
    expected: Optional[str]
    case_sensitive: bool = False


@dataclass(frozen=True)
class NumericVariant:
    # None when the stored answer does not parse
    target: Optional[float]


@dataclass(frozen=True)
class FreeTextVariant:
    kind: str


@dataclass(frozen=True)
class UnknownVariant:
    kind: str


def parse_number(value):
    """Float parse; None when the value is not numeric"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def build_variant(kind, options, correct_answers, case_sensitive=False):
    """Decode raw option / answer lists into the variant for `kind`"""
    correct_answers = list(correct_answers or [])
    first = correct_answers[0] if correct_answers else None

    if kind in CHOICE_TYPES:
        return ChoiceVariant(
            tuple(str(opt) for opt in (options or [])),
            tuple(str(answer) for answer in correct_answers),
            multiple=(kind == MCQ_MULTIPLE),
        )

    if kind == TRUE_FALSE:
        return TrueFalseVariant(None if first is None else str(first))

    if kind == FILL_BLANK:
        return FillBlankVariant(None if first is None else str(first), bool(case_sensitive))

    if kind == NUMERICAL:
        return NumericVariant(parse_number(first))

    if kind in FREE_TEXT_TYPES:
        return FreeTextVariant(kind)

    return UnknownVariant(kind)


class Question(db.Model):
    """Question model"""
    __tablename__ = 'questions'

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id'), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False, default=1)
    question_type = db.Column(db.String(30), nullable=False, default=MCQ_SINGLE)
    question_text = db.Column(db.Text, nullable=False)

    # JSON arrays
    options = db.Column(db.Text, default='[]')
    correct_answers = db.Column(db.Text, nullable=False, default='[]')

    marks = db.Column(db.Integer, nullable=False, default=1)
    is_case_sensitive = db.Column(db.Boolean, default=False)

    answers = db.relationship('Answer', backref='question', lazy=True, passive_deletes=True)

    def __repr__(self):
        return f'<Question {self.number}: {self.question_text[:50]}>'

    @staticmethod
    def _load(raw):
        if not raw:
            return []
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return []
        return value if isinstance(value, list) else [value]

    def get_options(self):
        """Options as list"""
        if self.question_type == TRUE_FALSE and not self._load(self.options):
            return list(TRUE_FALSE_OPTIONS)
        return self._load(self.options)

    def get_correct_answers(self):
        """Correct answers as list"""
        return self._load(self.correct_answers)

    def set_options(self, options):
        self.options = json.dumps(list(options or []))

    def set_correct_answers(self, answers):
        self.correct_answers = json.dumps(list(answers or []))

    @property
    def variant(self):
        return build_variant(
            self.question_type,
            self.get_options(),
            self.get_correct_answers(),
            self.is_case_sensitive,
        )

    def to_dict(self, include_answers=True):
        data = {
            'id': self.id,
            'number': self.number,
            'question_type': self.question_type,
            'question_text': self.question_text,
            'options': self.get_options(),
            'marks': self.marks,
            'is_case_sensitive': bool(self.is_case_sensitive),
        }
        if include_answers:
            data['correct_answers'] = self.get_correct_answers()
        return data
