"""
Scoring of a submitted attempt.

Pure functions only: callers load the frozen question list, the answer key
and the saved answers, and persist the returned scorecard themselves.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping, Optional, Sequence

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def quantize_marks(value: Decimal) -> Decimal:
    """Round to the two decimal places used for storage."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.25 as 0.25 instead of its binary float expansion
    return Decimal(str(value))


@dataclass
class QuestionScore:
    question_id: int
    selected_option: Optional[int]
    is_correct: Optional[bool]
    marks: Decimal

    @property
    def attempted(self) -> bool:
        return self.selected_option is not None


@dataclass
class ScoreCard:
    total_questions: int
    correct_count: int
    incorrect_count: int
    total_marks: Decimal
    percentage: Decimal
    accuracy: Decimal
    questions: List[QuestionScore] = field(default_factory=list)

    @property
    def attempted_count(self) -> int:
        return self.correct_count + self.incorrect_count

    @property
    def unattempted_count(self) -> int:
        return self.total_questions - self.attempted_count

    def by_question(self) -> Dict[int, QuestionScore]:
        return {q.question_id: q for q in self.questions}


def accuracy_of(correct: int, attempted: int) -> Decimal:
    """Share of attempted questions answered correctly, in percent."""
    if not attempted:
        return Decimal("0.00")
    return quantize_marks(Decimal(correct) / Decimal(attempted) * HUNDRED)


def score_attempt(
    question_ids: Sequence[int],
    answer_key: Mapping[int, int],
    selections: Mapping[int, Optional[int]],
    positive_marks,
    negative_marks,
) -> ScoreCard:
    """
    Score an attempt against its frozen question list.

    Args:
        question_ids: Frozen, ordered question IDs of the attempt
        answer_key: question_id -> correct option (1-4)
        selections: question_id -> selected option, ``None`` when cleared.
            Questions missing from the mapping count as unattempted.
        positive_marks: Marks for a correct answer
        negative_marks: Marks deducted for an incorrect answer

    Returns:
        ScoreCard with per-question results and rounded aggregates
    """
    positive = _to_decimal(positive_marks)
    negative = _to_decimal(negative_marks)

    correct = 0
    incorrect = 0
    raw_total = Decimal("0")
    results: List[QuestionScore] = []

    for question_id in question_ids:
        selected = selections.get(question_id)
        if selected is None:
            results.append(QuestionScore(question_id, None, None, Decimal("0")))
            continue

        if selected == answer_key.get(question_id):
            correct += 1
            marks = positive
            is_correct = True
        else:
            incorrect += 1
            marks = -negative
            is_correct = False

        raw_total += marks
        results.append(QuestionScore(question_id, selected, is_correct, marks))

    total_questions = len(question_ids)
    max_marks = positive * total_questions
    if max_marks > 0:
        raw_percentage = raw_total / max_marks * HUNDRED
    else:
        raw_percentage = Decimal("0")

    accuracy = accuracy_of(correct, correct + incorrect)

    return ScoreCard(
        total_questions=total_questions,
        correct_count=correct,
        incorrect_count=incorrect,
        total_marks=quantize_marks(raw_total),
        percentage=quantize_marks(raw_percentage),
        accuracy=accuracy,
        questions=results,
    )
