# storefront/core/errors.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "BAD_REQUEST"
    message: str = "Requisição inválida"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error_code: Optional[str] = None,
        details: Optional[list[dict[str, Any]]] = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    message = "Dados inválidos"


class BusinessRuleError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BUSINESS_RULE"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHORIZED"
    message = "Não autenticado"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"
    message = "Acesso negado"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Recurso não encontrado"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Conflito com o estado atual do recurso"


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMITED"
    message = "Muitas requisições. Tente novamente em instantes."


class PaymentProcessingError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "PAYMENT_FAILED"
    message = "Falha ao processar pagamento"


class InvalidCardTokenError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_TOKEN"
    message = "Token de cartão inválido ou expirado"


def error_body(message: str, error_code: str, details: Optional[list] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message, "errorCode": error_code}
    if details:
        body["details"] = details
    return body


_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s (%s)", request.method, request.url.path, exc.error_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, exc.details),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        details.append({"field": ".".join(loc), "message": err.get("msg", "inválido")})
    message = details[0]["message"] if details else "Dados inválidos"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(message, "VALIDATION_ERROR", details),
    )


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # base do Starlette: cobre também rota inexistente (404) e método não permitido (405)
    message = exc.detail if isinstance(exc.detail, str) else "Erro na requisição"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, _HTTP_CODES.get(exc.status_code, "ERROR")),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Erro não tratado em %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Erro interno do servidor", "INTERNAL_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
