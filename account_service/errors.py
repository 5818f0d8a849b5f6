"""Clasificación centralizada de errores y su respuesta JSON.

Todas las respuestas de error son HTTP 200 con `{"success": false, "message": ...}`.
Nunca se exponen trazas ni códigos del driver al cliente.
"""

import enum
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Taxonomía de errores del servicio."""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    CREDENTIALS = "credentials"
    INTERNAL = "internal"


# Mensajes por defecto; los handlers pueden pasar uno propio (p.ej. validación por endpoint)
DEFAULT_MESSAGES = {
    ErrorKind.VALIDATION: "Invalid request",
    ErrorKind.CONFLICT: "Username, email, or phone already exists",
    ErrorKind.NOT_FOUND: "User not found",
    ErrorKind.CREDENTIALS: "Invalid phone number or password",
    ErrorKind.INTERNAL: "Server error",
}

# Códigos de violación de unicidad por driver
MYSQL_DUP_ENTRY = 1062          # ER_DUP_ENTRY
POSTGRES_UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE_MARKER = "UNIQUE constraint failed"


class AccountError(Exception):
    """Error de negocio que se devuelve al cliente como `{success: false}`."""

    def __init__(self, kind: ErrorKind, message: str = None):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        super().__init__(self.message)


def is_unique_violation(exc: Exception) -> bool:
    """Detecta una violación de unicidad a partir del error original del driver."""
    if not isinstance(exc, IntegrityError):
        return False
    orig = exc.orig

    # psycopg2 expone el SQLSTATE en pgcode
    if getattr(orig, "pgcode", None) == POSTGRES_UNIQUE_VIOLATION:
        return True

    # PyMySQL: args = (errno, mensaje)
    args = getattr(orig, "args", ())
    if args and args[0] == MYSQL_DUP_ENTRY:
        return True

    return SQLITE_UNIQUE_MARKER in str(orig)


def classify_store_error(exc: Exception) -> ErrorKind:
    """Mapea un error del almacén a la taxonomía del servicio."""
    if is_unique_violation(exc):
        return ErrorKind.CONFLICT
    return ErrorKind.INTERNAL


def store_failure(exc: Exception, context: str) -> AccountError:
    """
    Clasifica y registra un error del almacén, devolviendo el AccountError a lanzar.
    El detalle solo queda en el log del servidor.
    """
    kind = classify_store_error(exc)
    if kind is ErrorKind.CONFLICT:
        logger.warning(f"{context}: violación de unicidad.")
    else:
        logger.error(f"{context} error: {exc}", exc_info=True)
    return AccountError(kind)


def error_response(kind: ErrorKind, message: str = None) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={"success": False, "message": message or DEFAULT_MESSAGES[kind]},
    )


async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    return error_response(exc.kind, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Parámetros de ruta inválidos, p.ej. un id no numérico."""
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    logger.warning(f"Petición inválida en {request.method} {request.url.path}: {fields}")
    return error_response(ErrorKind.VALIDATION)
