"""Error handling for the FastAPI application and directory failures."""

import pydantic
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from loguru import logger

from scim_mirror.exceptions import DirectoryUnavailable
from scim_mirror.monitoring.logger import log_response_info
from scim_mirror.monitoring.request_context import get_request_context

__all__ = [
    "handle_broad_exceptions",
    "handle_directory_unavailable",
    "handle_pydantic_validation_errors",
]


# fastapi docs on middlewares: https://fastapi.tiangolo.com/tutorial/middleware/
async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that goes unhandled by a more specific exception handler."""
    try:
        return await call_next(request)
    except Exception as err:  # pylint: disable=broad-except
        error_response = {"detail": "Internal server error", "error_type": type(err).__name__}

        # Set by RequestContextMiddleware
        request_body = getattr(request.state, "request_body", None)

        logger.opt(exception=err).error(
            f"Unhandled exception: {type(err).__name__}: {str(err)}",
            http_status=500,
            http_method=request.method,
            url_path=str(request.url.path),
            error_type=type(err).__name__,
            error_message=str(err),
            request_body=request_body,
            response_body=error_response,
            **get_request_context(),
        )

        response = JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response,
        )
        log_response_info(response)
        return response


# fastapi docs on error handlers: https://fastapi.tiangolo.com/tutorial/handling-errors/
async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = exc.errors()
    error_response = {
        "detail": [
            {
                "msg": error["msg"],
                "input": error["input"],
            }
            for error in errors
        ]
    }

    request_body = getattr(request.state, "request_body", None)

    logger.warning(
        f"Validation error: {len(errors)} validation errors",
        http_status=422,
        http_method=request.method,
        url_path=str(request.url.path),
        error_type="ValidationError",
        validation_errors=errors,
        request_body=request_body,
        response_body=error_response,
    )

    response = JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_response,
    )
    log_response_info(response)

    return response


async def handle_directory_unavailable(request: Request, exc: DirectoryUnavailable) -> JSONResponse:
    """
    Convert a failed directory call made on behalf of an API request into a 502.

    Parameters
    ----------
    request : Request
        FastAPI request object
    exc : DirectoryUnavailable
        Directory failure, carrying the upstream status code when there was one

    Returns
    -------
    JSONResponse
        502 Bad Gateway with the upstream status in the body
    """
    error_response = {
        "detail": f"Identity directory error: {exc}",
        "error_type": type(exc).__name__,
        "upstream_status": exc.status_code,
    }

    logger.error(
        f"Directory request failed: {exc}",
        http_status=502,
        http_method=request.method,
        url_path=str(request.url.path),
        upstream_status=exc.status_code,
        upstream_body=exc.body,
        request_body=getattr(request.state, "request_body", None),
    )

    response = JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=error_response,
    )
    log_response_info(response)
    return response
