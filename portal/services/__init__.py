"""
Services Package
"""
from portal.services.evaluation import EvaluationService
from portal.services.entry import Admission, admit_student
from portal.services.session import TestSession

__all__ = ['EvaluationService', 'Admission', 'admit_student', 'TestSession']
