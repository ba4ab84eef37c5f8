"""
Central API router and utilities for the Lingoloop service.

This module provides:
- A central router that includes every feature module router
- The mapping from Lingoloop errors to HTTP responses
- Common response helpers and exception handlers
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple, Type

from fastapi import APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lingoloop.common.error_handling import (
    ContentPolicyRefusalError,
    ErrorCode,
    GenerationCancelledError,
    GenerationError,
    InsufficientItemsError,
    LingoloopError,
    NotFoundError,
    PipelineStateError,
    RateLimitedError,
    ValidationError,
    error_response,
    log_error,
)

logger = logging.getLogger(__name__)

# Create main API router
main_router = APIRouter()

# Version prefix for all API routes
API_VERSION = "v1"

# Dictionary to track registered feature modules
registered_modules: Dict[str, APIRouter] = {}

# First match wins, so subclasses come before their bases
ERROR_STATUS: List[Tuple[Type[LingoloopError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ContentPolicyRefusalError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InsufficientItemsError, status.HTTP_409_CONFLICT),
    (GenerationCancelledError, status.HTTP_409_CONFLICT),
    (PipelineStateError, status.HTTP_409_CONFLICT),
    (GenerationError, status.HTTP_502_BAD_GATEWAY),
]


def register_module(name: str, router: APIRouter) -> None:
    """
    Register a feature module router with the main API router.

    Args:
        name: Name of the module, used as the URL segment and tag
        router: FastAPI router for the module
    """
    if name in registered_modules:
        logger.warning(f"Module '{name}' already registered, overwriting")

    main_router.include_router(
        router,
        prefix=f"/{API_VERSION}/{name}",
        tags=[name]
    )

    registered_modules[name] = router
    logger.info(f"Registered module: {name} with {len(router.routes)} routes")


def status_for(error: LingoloopError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def lingoloop_exception_handler(request: Request, exc: LingoloopError) -> JSONResponse:
    """
    Render a LingoloopError as a standard error body.

    Rate-limited responses carry a ``Retry-After`` header when the wait
    is known.
    """
    status_code = status_for(exc)
    level = logging.ERROR if status_code >= 500 else logging.INFO
    log_error(exc, level=level, context={"path": request.url.path})

    headers: Dict[str, str] = {}
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))

    return JSONResponse(
        status_code=status_code,
        content=error_response(exc),
        headers=headers or None,
    )


# Common validation error handler
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request parsing errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": [str(part) for part in error.get("loc", [])],
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=APIResponse.error(
            "Validation error",
            details={"errors": error_details},
            code=ErrorCode.VALIDATION_ERROR.value,
        )
    )


# Standard API response model
class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        """
        Create a success response.

        Args:
            data: Response data
            message: Success message

        Returns:
            Response dictionary
        """
        return {
            "status": "success",
            "message": message,
            "data": data
        }

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error response.

        Args:
            message: Error message
            details: Optional error details
            code: Optional error code

        Returns:
            Response dictionary
        """
        response = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response
