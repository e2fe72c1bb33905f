"""Error taxonomy for the CV processing pipeline."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional

_SENSITIVE_PATTERN = re.compile(r"(?i)(token|secret|password|key)=([^\s&]+)")
_MAX_DIAGNOSTIC_CHARS = 2000


class PipelineStage(str, Enum):
    FETCH = "fetch"
    EXTRACT = "extract"
    DETECT = "detect"
    MODEL = "model"
    PARSE = "parse"
    PUBLISH = "publish"


class FetchErrorCode(str, Enum):
    NOT_FOUND = "NotFound"
    CLIENT_ERROR = "ClientError"
    SERVER_ERROR = "ServerError"
    EMPTY_CONTENT = "EmptyContent"
    NETWORK = "Network"


class ExtractionErrorCode(str, Enum):
    EMPTY_INPUT = "EmptyInput"
    PARSE_FAILURE = "ParseFailure"


class ModelErrorCode(str, Enum):
    API_ERROR = "ApiError"
    RETRIES_EXHAUSTED = "RetriesExhausted"
    INVALID_REQUEST = "InvalidRequest"


class ParseErrorCode(str, Enum):
    INVALID_JSON = "InvalidJson"


class PublishErrorCode(str, Enum):
    REJECTED = "Rejected"
    UNAVAILABLE = "Unavailable"
    UNROUTABLE = "Unroutable"


TIMEOUT_CODE = "Timeout"
UNEXPECTED_CODE = "Unexpected"

_TRANSIENT_CODES = frozenset(
    {
        FetchErrorCode.SERVER_ERROR.value,
        FetchErrorCode.NETWORK.value,
        ModelErrorCode.API_ERROR.value,
        ModelErrorCode.RETRIES_EXHAUSTED.value,
        PublishErrorCode.REJECTED.value,
        PublishErrorCode.UNAVAILABLE.value,
        TIMEOUT_CODE,
    }
)


class StageError(RuntimeError):
    """Base error raised by an individual pipeline stage."""

    stage: PipelineStage

    def __init__(self, code: Enum, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        base = f"{self.code.value}: {self.message}"
        if self.details:
            return f"{base} ({self.details})"
        return base


class FetchError(StageError):
    """Raised when the document cannot be downloaded from the document store."""

    stage = PipelineStage.FETCH

    def __init__(
        self, code: FetchErrorCode, message: str, *, details: dict[str, Any] | None = None
    ):
        super().__init__(code, message, details=details)


class ExtractionError(StageError):
    """Raised when the document buffer cannot be turned into text."""

    stage = PipelineStage.EXTRACT

    def __init__(
        self, code: ExtractionErrorCode, message: str, *, details: dict[str, Any] | None = None
    ):
        super().__init__(code, message, details=details)


class ModelError(StageError):
    """Raised when the chat-completion API does not produce a usable answer."""

    stage = PipelineStage.MODEL

    def __init__(
        self, code: ModelErrorCode, message: str, *, details: dict[str, Any] | None = None
    ):
        super().__init__(code, message, details=details)


class ParseError(StageError):
    """Raised when the model answer is not a JSON object at all."""

    stage = PipelineStage.PARSE

    def __init__(
        self, code: ParseErrorCode, message: str, *, details: dict[str, Any] | None = None
    ):
        super().__init__(code, message, details=details)


class PublishError(StageError):
    """Raised when the outbound channel refuses or cannot take the result."""

    stage = PipelineStage.PUBLISH

    def __init__(
        self, code: PublishErrorCode, message: str, *, details: dict[str, Any] | None = None
    ):
        super().__init__(code, message, details=details)


class PipelineError(RuntimeError):
    """Uniform failure of one pipeline run, tagged with the stage that failed.

    The originating exception is chained as ``__cause__``. ``retryable`` is a
    hint for the redelivery mechanism; it does not trigger any retry here.
    """

    def __init__(
        self,
        stage: PipelineStage,
        code: str,
        message: str,
        *,
        document_id: Optional[int] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.code = code
        self.document_id = document_id
        self.retryable = is_transient_code(code) if retryable is None else retryable

    @classmethod
    def from_stage_error(
        cls, exc: StageError, *, document_id: Optional[int] = None
    ) -> PipelineError:
        return cls(exc.stage, exc.code.value, exc.message, document_id=document_id)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        return f"{self.stage.value}/{self.code}: {self.message}"


def is_transient_code(code: str) -> bool:
    return code in _TRANSIENT_CODES


def redact_sensitive(text: str) -> str:
    """Mask obvious secrets in error messages."""
    return _SENSITIVE_PATTERN.sub(lambda m: f"{m.group(1)}=***", text)


def diagnostic_body(text: str, *, limit: int = _MAX_DIAGNOSTIC_CHARS) -> str:
    """Redact and bound a remote error body before attaching it to an error."""

    cleaned = redact_sensitive(text)
    if len(cleaned) > limit:
        return cleaned[:limit] + "..."
    return cleaned


__all__ = [
    "ExtractionError",
    "ExtractionErrorCode",
    "FetchError",
    "FetchErrorCode",
    "ModelError",
    "ModelErrorCode",
    "ParseError",
    "ParseErrorCode",
    "PipelineError",
    "PipelineStage",
    "PublishError",
    "PublishErrorCode",
    "StageError",
    "TIMEOUT_CODE",
    "UNEXPECTED_CODE",
    "diagnostic_body",
    "is_transient_code",
    "redact_sensitive",
]
