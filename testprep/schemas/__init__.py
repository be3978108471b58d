"""Schemas module - Import all schemas here."""
from testprep.schemas.common import ErrorResponse, Message, WebhookAck
from testprep.schemas.attempt import (
    AccessCheck,
    AnswerSave,
    AnswerSaved,
    AttemptHistoryItem,
    AttemptQuestions,
    AttemptStarted,
    AttemptSubmit,
    QuestionForAttempt,
    ResultSummary,
    SolutionEntry,
    SolutionView,
)
from testprep.schemas.payment import (
    PaymentOrder,
    PaymentOrderCreate,
    PaymentVerified,
    PaymentVerify,
    PlanOut,
    SubscriptionOut,
)

__all__ = [
    "ErrorResponse",
    "Message",
    "WebhookAck",
    "AccessCheck",
    "AnswerSave",
    "AnswerSaved",
    "AttemptHistoryItem",
    "AttemptQuestions",
    "AttemptStarted",
    "AttemptSubmit",
    "QuestionForAttempt",
    "ResultSummary",
    "SolutionEntry",
    "SolutionView",
    "PaymentOrder",
    "PaymentOrderCreate",
    "PaymentVerified",
    "PaymentVerify",
    "PlanOut",
    "SubscriptionOut",
]
