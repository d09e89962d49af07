"""
Models Package
Exports all database models
"""
from portal.models.exam import Exam
from portal.models.question import Question
from portal.models.slot import Slot, AccessCode
from portal.models.submission import Submission, Answer
from portal.models.retest_key import RetestKey

__all__ = ['Exam', 'Question', 'Slot', 'AccessCode', 'Submission', 'Answer', 'RetestKey']
