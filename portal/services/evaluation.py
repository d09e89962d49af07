"""
Evaluation Service
Pure grading of one answer against a question variant, and aggregation of a
whole attempt. No database access.
"""
from collections import namedtuple

from portal.models.question import (
    ChoiceVariant,
    FillBlankVariant,
    FreeTextVariant,
    NumericVariant,
    TrueFalseVariant,
    parse_number,
)

Evaluation = namedtuple('Evaluation', ['is_correct', 'marks_awarded'])

Results = namedtuple(
    'Results',
    ['score', 'correct_count', 'wrong_count', 'pending_count', 'needs_manual_review'],
)


class EvaluationService:
    """Grading rules per question kind"""

    @staticmethod
    def is_correct(variant, student_answer):
        """
        Correctness for a single answer.

        Returns:
            True / False, or None when the answer needs manual review
        """
        if isinstance(variant, ChoiceVariant):
            correct = list(variant.correct_values)
            if variant.multiple:
                if not isinstance(student_answer, (list, tuple)):
                    return False
                given = sorted(str(a) for a in student_answer)
                return len(given) == len(correct) and given == sorted(correct)
            return bool(correct) and student_answer is not None and str(student_answer) == correct[0]

        if isinstance(variant, TrueFalseVariant):
            return variant.correct is not None and student_answer == variant.correct

        if isinstance(variant, FillBlankVariant):
            if variant.expected is None or student_answer is None:
                return False
            if variant.case_sensitive:
                return student_answer == variant.expected
            return str(student_answer).strip().lower() == variant.expected.strip().lower()

        if isinstance(variant, NumericVariant):
            given = parse_number(student_answer)
            return given is not None and variant.target is not None and given == variant.target

        if isinstance(variant, FreeTextVariant):
            return None

        return False

    @staticmethod
    def evaluate(question, student_answer):
        """Grade one answer; `question` exposes `variant` and `marks`"""
        correct = EvaluationService.is_correct(question.variant, student_answer)
        return Evaluation(correct, (question.marks or 0) if correct is True else 0)

    @staticmethod
    def calculate_results(evaluations):
        """Aggregate evaluations into score and tallies"""
        score = 0
        correct_count = 0
        wrong_count = 0
        pending_count = 0

        for evaluation in evaluations:
            score += evaluation.marks_awarded
            if evaluation.is_correct is True:
                correct_count += 1
            elif evaluation.is_correct is False:
                wrong_count += 1
            else:
                pending_count += 1

        return Results(score, correct_count, wrong_count, pending_count, pending_count > 0)


def percentage_of(score, total_marks):
    return (score / total_marks) * 100 if total_marks > 0 else 0


evaluate = EvaluationService.evaluate
calculate_results = EvaluationService.calculate_results
