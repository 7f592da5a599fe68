"""Domain-specific exceptions for the EVI bridge.

These exceptions are safe to import from API layers without pulling in the
websocket transport.
"""

from __future__ import annotations


class EVIError(Exception):
    status_code: int = 500
    default_detail: str = "EVI bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class InitError(EVIError):
    status_code = 503
    default_detail = "EVI service initialization failed."


class NotInitializedError(EVIError):
    status_code = 503
    default_detail = "EVI service not initialized."


class ConnectError(EVIError):
    status_code = 502
    default_detail = "Could not connect to EVI."


class SendError(EVIError):
    status_code = 409
    default_detail = "Connection is not open."


class TransportError(EVIError):
    status_code = 502
    default_detail = "EVI connection dropped."


class DuplicateSessionError(EVIError):
    status_code = 409
    default_detail = "A conversation is already active for this call."


class NoActiveSessionError(EVIError):
    status_code = 404
    default_detail = "No active EVI conversation for this call."


class TransportNotReadyError(EVIError):
    status_code = 409
    default_detail = "EVI connection not ready."


class MalformedFrameError(EVIError):
    status_code = 422
    default_detail = "Malformed EVI frame."


class EngineError(EVIError):
    """Error reported by the engine itself through an ``error`` frame."""

    status_code = 502
    default_detail = "EVI error"

    def __init__(self, detail: str | None = None, *, code: str | None = None, slug: str | None = None) -> None:
        super().__init__(detail)
        self.code = code
        self.slug = slug


class ChatHistoryError(EVIError):
    status_code = 502
    default_detail = "EVI chat history request failed."
