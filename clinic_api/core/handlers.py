import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import compile_path

from clinic_api.core.errors import (
    AppError,
    CodeMismatch,
    UpstreamError,
    VerificationError,
)

logger = logging.getLogger(__name__)

_BASE_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
}

_HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}

_HTTP_ERROR_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
}


def _allowed_methods(app: FastAPI, path: str) -> list[str]:
    """Methods declared for every path template that matches, plus OPTIONS.

    Read from the OpenAPI path table, which lists each operation under its
    full prefixed path however the routers were nested.
    """
    methods: set[str] = set()
    for template, operations in app.openapi().get("paths", {}).items():
        path_regex, _, _ = compile_path(template)
        if path_regex.match(path):
            methods.update(op.upper() for op in operations if op.upper() in _HTTP_METHODS)
    methods.discard("HEAD")
    methods.discard("OPTIONS")
    return sorted(methods) + ["OPTIONS"]


def cors_headers(app: FastAPI, path: str) -> dict[str, str]:
    headers = dict(_BASE_CORS_HEADERS)
    headers["Access-Control-Allow-Methods"] = ", ".join(_allowed_methods(app, path))
    return headers


def install_cors(app: FastAPI) -> None:
    """Answer pre-flight with an empty 200 and stamp CORS headers on every reply."""

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        headers = cors_headers(app, request.url.path)
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=headers)
        response = await call_next(request)
        for key, value in headers.items():
            response.headers.setdefault(key, value)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(VerificationError)
    async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
        content = {"success": False, "error": exc.message, "reason": exc.reason}
        if isinstance(exc, CodeMismatch):
            content["remaining_attempts"] = exc.remaining
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "details": exc.details},
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        fields = ", ".join(d["loc"][-1] for d in details if d["loc"])
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid or missing fields: {fields}", "details": details},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = _HTTP_ERROR_MESSAGES.get(exc.status_code, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Generic 500; detail goes to the log only. CORS added here since this runs outside the middleware."""
        logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
            headers=cors_headers(app, request.url.path),
        )
