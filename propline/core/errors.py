"""
Error taxonomy for the resolution and matching pipeline.

Every failure surfaced to a caller is a PropLineError subclass with a
machine-readable ``kind`` so callers branch on ``err.kind`` instead of
matching message text:

- ProviderUnavailable: upstream exhausted its retries or returned a terminal status
- NotFound: no matching identity, game or line
- InsufficientData: fewer usable games than a forecast requires
- AlreadyEvaluated: an outcome was attached twice to the same ledger entry
- InvalidInput: malformed caller-supplied payload or argument
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    NOT_FOUND = "not_found"
    INSUFFICIENT_DATA = "insufficient_data"
    ALREADY_EVALUATED = "already_evaluated"
    INVALID_INPUT = "invalid_input"


class PropLineError(Exception):
    """Base error carrying kind, message and the underlying cause."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for API layers and logs."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "cause": repr(self.cause) if self.cause is not None else None,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ProviderUnavailable(PropLineError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.provider = provider
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(provider=self.provider, status=self.status)
        return data


class NotFound(PropLineError):
    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["suggestions"] = self.suggestions
        return data


class InsufficientData(PropLineError):
    kind = ErrorKind.INSUFFICIENT_DATA

    def __init__(
        self,
        message: str,
        games_found: int = 0,
        required: int = 3,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.games_found = games_found
        self.required = required

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(games_found=self.games_found, required=self.required)
        return data


class AlreadyEvaluated(PropLineError):
    kind = ErrorKind.ALREADY_EVALUATED

    def __init__(self, entry_id: str, cause: Optional[BaseException] = None):
        super().__init__(f"Prediction {entry_id} already has an outcome attached", cause)
        self.entry_id = entry_id


class InvalidInput(PropLineError):
    kind = ErrorKind.INVALID_INPUT
