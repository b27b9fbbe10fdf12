"""
Use Cases Layer (chat operations)

Entry points consumed by the HTTP routers:

    from portal_chat.application.usecases import ResponseGenerator, SendMessageInput
"""

from .create_session import CreateSessionInput, CreateSessionResult, CreateSessionUseCase
from .end_session import EndSessionInput, EndSessionUseCase
from .get_history import GetHistoryResult, GetHistoryUseCase
from .send_message import (
    STATUS_DEGRADED,
    STATUS_FILTERED,
    STATUS_LOW_CONFIDENCE,
    STATUS_OK,
    RateLimitInfo,
    ResponseGenerator,
    SendMessageInput,
    SendMessageResult,
)

__all__ = [
    "CreateSessionInput",
    "CreateSessionResult",
    "CreateSessionUseCase",
    "EndSessionInput",
    "EndSessionUseCase",
    "GetHistoryResult",
    "GetHistoryUseCase",
    "RateLimitInfo",
    "ResponseGenerator",
    "SendMessageInput",
    "SendMessageResult",
    "STATUS_OK",
    "STATUS_LOW_CONFIDENCE",
    "STATUS_DEGRADED",
    "STATUS_FILTERED",
]
