"""
Common schemas for API responses.
"""
from pydantic import BaseModel


class Message(BaseModel):
    """Generic message response."""

    message: str


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str


class WebhookAck(BaseModel):
    status: str
