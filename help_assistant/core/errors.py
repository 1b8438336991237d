"""Error kinds and user-facing error mapping for the assistant."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Every failure kind the assistant can report."""

    INVALID_REQUEST = "INVALID_REQUEST"
    EMPTY_QUERY = "EMPTY_QUERY"
    QUERY_TOO_LONG = "QUERY_TOO_LONG"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    LLM_FAILED = "LLM_FAILED"
    NO_CHUNKS_FOUND = "NO_CHUNKS_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ErrorConfig:
    """User message and HTTP status for an error kind."""

    user_message: str
    status_code: int


ERROR_MAP: dict[ErrorCode, ErrorConfig] = {
    ErrorCode.INVALID_REQUEST: ErrorConfig("La solicitud no es válida. Revisa los datos enviados.", 400),
    ErrorCode.EMPTY_QUERY: ErrorConfig("Por favor escribe una pregunta.", 400),
    ErrorCode.QUERY_TOO_LONG: ErrorConfig(
        "Tu pregunta es demasiado larga. Intenta con una pregunta más corta.", 400
    ),
    ErrorCode.AUTH_REQUIRED: ErrorConfig(
        "Necesitas iniciar sesión para usar el asistente.", 401
    ),
    ErrorCode.ADMIN_REQUIRED: ErrorConfig("Se requieren permisos de administrador.", 403),
    ErrorCode.RATE_LIMITED: ErrorConfig(
        "Demasiadas solicitudes. Por favor espera un momento.", 429
    ),
    ErrorCode.EMBEDDING_FAILED: ErrorConfig(
        "No pude procesar tu pregunta. Por favor intenta de nuevo.", 502
    ),
    ErrorCode.LLM_FAILED: ErrorConfig(
        "No pude generar una respuesta. Por favor intenta de nuevo.", 502
    ),
    ErrorCode.NO_CHUNKS_FOUND: ErrorConfig(
        "No encontré información relevante para tu pregunta. Intenta reformularla.", 200
    ),
    ErrorCode.INTERNAL_ERROR: ErrorConfig(
        "Ha ocurrido un error interno. Por favor intenta de nuevo.", 500
    ),
}


class AssistantError(Exception):
    """Classified assistant failure with a user-facing message."""

    def __init__(
        self,
        code: ErrorCode,
        detail: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        config = ERROR_MAP.get(code, ERROR_MAP[ErrorCode.INTERNAL_ERROR])
        super().__init__(detail or code.value)
        self.code = code
        self.detail = detail or code.value
        self.status_code = config.status_code
        self.user_message = config.user_message
        self.headers = headers or {}


class RequestAbandoned(Exception):
    """The caller went away before the pipeline finished."""


def create_error(
    code: ErrorCode | str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> AssistantError:
    """
    Build an AssistantError from its code.

    Unknown string codes fall back to INTERNAL_ERROR.
    """
    if not isinstance(code, ErrorCode):
        try:
            code = ErrorCode(code)
        except ValueError:
            code = ErrorCode.INTERNAL_ERROR
    return AssistantError(code, detail, headers)


def to_error_response(error: BaseException) -> tuple[dict[str, Any], int]:
    """
    Map any exception to a JSON-ready body and an HTTP status.

    Args:
        error: Exception raised while serving a request

    Returns:
        Tuple of (body, status_code)
    """
    if isinstance(error, AssistantError):
        return (
            {"success": False, "error": error.user_message, "code": error.code.value},
            error.status_code,
        )

    fallback = ERROR_MAP[ErrorCode.INTERNAL_ERROR]
    return (
        {
            "success": False,
            "error": fallback.user_message,
            "code": ErrorCode.INTERNAL_ERROR.value,
        },
        fallback.status_code,
    )
