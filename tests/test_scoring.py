from decimal import Decimal

from testprep.core.engine.scoring import accuracy_of, quantize_marks, score_attempt


def test_mixed_answers_with_negative_marking():
    question_ids = list(range(1, 11))
    answer_key = {qid: 1 for qid in question_ids}
    selections = {1: 1, 2: 1, 3: 1, 4: 2, 5: 3}

    card = score_attempt(question_ids, answer_key, selections, Decimal("1"), Decimal("0.25"))

    assert card.correct_count == 3
    assert card.incorrect_count == 2
    assert card.attempted_count == 5
    assert card.unattempted_count == 5
    assert card.total_marks == Decimal("2.50")
    assert card.percentage == Decimal("25.00")
    assert card.accuracy == Decimal("60.00")


def test_cleared_answer_counts_as_unattempted():
    card = score_attempt([1, 2], {1: 2, 2: 3}, {1: None, 2: 3}, 1, 0.25)

    assert card.correct_count == 1
    assert card.incorrect_count == 0
    assert card.unattempted_count == 1
    by_question = card.by_question()
    assert by_question[1].is_correct is None
    assert by_question[1].marks == Decimal("0")
    assert by_question[2].is_correct is True


def test_answers_outside_frozen_list_are_ignored():
    card = score_attempt([1, 2], {1: 1, 2: 1}, {1: 1, 99: 1}, 1, 0)

    assert card.total_questions == 2
    assert card.correct_count == 1
    assert 99 not in card.by_question()


def test_all_wrong_goes_negative():
    card = score_attempt([1, 2, 3, 4], {q: 1 for q in range(1, 5)}, {q: 4 for q in range(1, 5)}, 2, Decimal("0.5"))

    assert card.total_marks == Decimal("-2.00")
    assert card.percentage == Decimal("-25.00")
    assert card.accuracy == Decimal("0.00")


def test_zero_positive_marks_gives_zero_percentage():
    card = score_attempt([1], {1: 1}, {1: 1}, 0, 0)

    assert card.percentage == Decimal("0")
    assert card.total_marks == Decimal("0.00")


def test_empty_question_list():
    card = score_attempt([], {}, {}, 1, 0.25)

    assert card.total_questions == 0
    assert card.percentage == Decimal("0")
    assert card.accuracy == Decimal("0.00")


def test_float_marks_are_not_binary_expanded():
    # 0.1 as a float would drift; marks are taken through str()
    card = score_attempt([1, 2, 3], {1: 1, 2: 1, 3: 1}, {1: 2, 2: 2, 3: 2}, 1, 0.1)

    assert card.total_marks == Decimal("-0.30")


def test_rounding_is_half_up():
    assert quantize_marks(Decimal("0.125")) == Decimal("0.13")
    assert quantize_marks(Decimal("-0.125")) == Decimal("-0.13")
    assert accuracy_of(2, 3) == Decimal("66.67")
    assert accuracy_of(0, 0) == Decimal("0.00")
