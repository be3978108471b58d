"""
Attempt and payment engine modules.
"""
from .entitlement import EntitlementDecision, EntitlementEvaluator
from .question_set import QuestionSetAssembler, SqlQuestionSource
from .scoring import ScoreCard, score_attempt
from .attempt_manager import AnswerInput, AttemptManager
from .reconciliation import PaymentReconciler, ReconcileOutcome
from .checkout import PaymentCheckout

__all__ = [
    "EntitlementDecision",
    "EntitlementEvaluator",
    "QuestionSetAssembler",
    "SqlQuestionSource",
    "ScoreCard",
    "score_attempt",
    "AnswerInput",
    "AttemptManager",
    "PaymentReconciler",
    "ReconcileOutcome",
    "PaymentCheckout",
]
