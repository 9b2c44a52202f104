# Error responses: every body carries "success" and a localized "message"

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from visitor_stats.core.config import settings
from visitor_stats.core.i18n import get_t


def error_detail(message: str, error: Exception | None = None) -> dict:
    """HTTPException detail; diagnostic text is only echoed outside production"""
    detail = {"message": message}
    if error is not None and settings.expose_errors:
        detail["error"] = str(error)
    return detail


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = {"success": False}
    if isinstance(exc.detail, dict):
        content.update(exc.detail)
    else:
        content["message"] = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    t = get_t(request)
    content = {"success": False, "message": t("invalid_request")}
    if settings.expose_errors:
        content["error"] = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
            for err in exc.errors()
        ]

    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
