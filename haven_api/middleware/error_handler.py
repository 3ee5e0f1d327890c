# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured HAL responses.
Provides the application exception taxonomy and centralized error formatting.
"""

from flask import Flask, current_app, jsonify, make_response, request
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, List, Optional, Tuple
from opentelemetry import trace
import logging

from ..domain.results import ErrorKind, WorkflowResult
from ..services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class CustomException(Exception):
    """Base class for custom application exceptions."""

    title = "Application Error"

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ValidationError(CustomException):
    """Malformed or missing required fields."""

    title = "Validation Error"

    def __init__(self, message: str, validation_errors: List[Any] = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationException(CustomException):
    """Missing, invalid or revoked credentials."""

    title = "Authentication Required"

    def __init__(self, message: str):
        super().__init__(message, 401, "authentication-required")


class ForbiddenError(CustomException):
    """Role or status precondition failed."""

    title = "Insufficient Permissions"

    def __init__(self, message: str):
        super().__init__(message, 403, "insufficient-permissions")


class NotFoundError(CustomException):
    """Referenced identity, profile, contract, message or notification does not exist."""

    title = "Resource Not Found"

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class DuplicateProfileError(CustomException):
    title = "Duplicate Profile"

    def __init__(self, message: str):
        super().__init__(message, 409, "duplicate-profile")


class InvalidStateTransitionError(CustomException):
    """Workflow entity is not in a state that allows the operation."""

    title = "Invalid State Transition"

    def __init__(self, message: str):
        super().__init__(message, 409, "invalid-state-transition")


_ERROR_KIND_EXCEPTIONS = {
    ErrorKind.FORBIDDEN: ForbiddenError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.DUPLICATE_PROFILE: DuplicateProfileError,
    ErrorKind.INVALID_STATE: InvalidStateTransitionError,
}


def _split_field_error(message: str) -> Dict[str, str]:
    field, sep, detail = message.partition(": ")
    if sep and " " not in field:
        return {"field": field, "message": detail}
    return {"message": message}


def raise_for_result(result: WorkflowResult) -> WorkflowResult:
    """
    Convert a failed WorkflowResult into the matching exception.

    Returns the result unchanged on success so callers can chain it.
    """
    if result.success:
        return result

    errors = result.validation_errors or []
    message = "; ".join(errors) if errors else (result.error_message or "Operation failed")

    if result.error_kind in _ERROR_KIND_EXCEPTIONS:
        raise _ERROR_KIND_EXCEPTIONS[result.error_kind](message)

    raise ValidationError(
        result.error_message or "Validation failed",
        [_split_field_error(e) for e in errors]
    )


class ErrorHandlerMiddleware:
    """Centralized error handling middleware with HAL response formatting."""

    _CLIENT_ERRORS = {
        400: ("bad-request", "Bad Request"),
        401: ("authentication-required", "Authentication Required"),
        403: ("insufficient-permissions", "Insufficient Permissions"),
        404: ("resource-not-found", "Resource Not Found"),
        405: ("method-not-allowed", "Method Not Allowed"),
        409: ("resource-conflict", "Resource Conflict"),
        415: ("unsupported-media-type", "Unsupported Media Type"),
        422: ("validation-error", "Validation Error"),
    }

    def __init__(self, app: Flask, hal_formatter: HalFormatter):
        self.app = app
        self.hal_formatter = hal_formatter
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            if error.code in self._CLIENT_ERRORS:
                error_type, title = self._CLIENT_ERRORS[error.code]
                return self.handle_client_error(error, error_type, title)
            if error.code is not None and error.code < 500:
                return self.handle_client_error(error, "client-error", error.name)
            return self.handle_server_error(error)

        # Handle generic exceptions
        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            return self.handle_unexpected_error(error)

    def _is_production(self) -> bool:
        return self.app.config.get('ENVIRONMENT') == 'production'

    def handle_client_error(
        self,
        error: HTTPException,
        error_type: str,
        title: str
    ) -> Tuple[Any, int]:
        """
        Handle client errors (4xx status codes).

        Args:
            error: HTTP exception
            error_type: Error type identifier
            title: Error title

        Returns:
            Tuple of (error response, status code)
        """
        with tracer.start_as_current_span("error_handler.client_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": error.code,
                "http.method": request.method,
                "http.path": request.path
            })

            detail = str(error.description) if error.description else title

            logger.warning(
                f"Client error: {title}",
                extra={
                    "error_type": error_type,
                    "status_code": error.code,
                    "detail": detail,
                    "path": request.path,
                    "method": request.method,
                    "user_agent": request.headers.get('User-Agent'),
                    "ip_address": request.remote_addr
                }
            )

            error_response = self.hal_formatter.builder.build_error_response(
                error_type,
                title,
                error.code,
                detail,
                request.path
            )

            return jsonify(error_response), error.code

    def handle_server_error(self, error: HTTPException) -> Tuple[Any, int]:
        """Handle server errors (5xx status codes)."""
        with tracer.start_as_current_span("error_handler.server_error") as span:
            span.set_attributes({
                "error.status": error.code,
                "http.method": request.method,
                "http.path": request.path
            })

            detail = str(error.description) if error.description else error.name

            logger.error(
                f"Server error: {error.name}",
                extra={
                    "status_code": error.code,
                    "detail": detail,
                    "path": request.path,
                    "method": request.method
                }
            )

            # Don't expose internal error details in production
            if self._is_production():
                detail = "An internal server error occurred"

            error_response = self.hal_formatter.builder.build_error_response(
                "server-error", error.name, error.code, detail, request.path
            )
            return jsonify(error_response), error.code

    def handle_unexpected_error(self, error: Exception) -> Tuple[Any, int]:
        """
        Handle unexpected exceptions not caught by specific handlers.

        Args:
            error: Unexpected exception

        Returns:
            Tuple of (error response, status code)
        """
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })

            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_type": "unexpected-error",
                    "error_class": error.__class__.__name__,
                    "error_message": str(error),
                    "path": request.path,
                    "method": request.method,
                    "user_agent": request.headers.get('User-Agent'),
                    "ip_address": request.remote_addr
                },
                exc_info=True
            )

            # Don't expose internal error details
            detail = "An unexpected error occurred"
            if not self._is_production():
                detail = f"{error.__class__.__name__}: {str(error)}"

            error_response = self.hal_formatter.format_server_error(detail, request.path)

            return jsonify(error_response), 500


def register_custom_error_handlers(app: Flask, hal_formatter: HalFormatter):
    """
    Register handlers for custom exceptions.

    Args:
        app: Flask application
        hal_formatter: HAL formatter instance
    """

    @app.errorhandler(CustomException)
    def handle_custom_exception(error: CustomException):
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            logger.warning(
                f"Custom exception: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "error_message": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            if isinstance(error, ValidationError):
                error_response = hal_formatter.format_validation_error(
                    error.message,
                    request.path,
                    error.validation_errors
                )
            else:
                error_response = hal_formatter.builder.build_error_response(
                    error.error_type,
                    error.title,
                    error.status_code,
                    error.message,
                    request.path
                )

            return jsonify(error_response), error.status_code


def format_pydantic_error_details(error: PydanticValidationError) -> List[Dict[str, str]]:
    """Per-field error entries for a pydantic validation failure."""
    details = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        entry = {"message": item.get("msg", "Invalid value")}
        if location:
            entry["field"] = location
        details.append(entry)
    return details


def make_validation_error_response(error: PydanticValidationError):
    """
    Request validation callback for flask-openapi3.

    Path, query and body validation failures are reported as 400
    validation-error problems like every other ValidationError.
    """
    hal_formatter = current_app.hal_formatter
    details = format_pydantic_error_details(error)

    logger.warning(
        "Request validation failed",
        extra={
            "path": request.path,
            "method": request.method,
            "error_count": len(details)
        }
    )

    response = make_response(jsonify(hal_formatter.format_validation_error(
        "Request validation failed", request.path, details
    )), 400)
    return response
