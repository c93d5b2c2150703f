"""
Structured Validation Error Utilities

Provides standardized 400 responses for missing or invalid request
parameters, so callers can tell them apart from store failures.

Error Response Format:
{
    "error": "missing_parameter" | "invalid_parameter" | "validation_error",
    "parameter": "login",
    "message": "login is required"
}
"""

from typing import Any, NoReturn, Optional

from fastapi import HTTPException, status
from pydantic import ValidationError


class ValidationErrorResponse:
    """Structured validation error response builder."""

    @staticmethod
    def missing_parameter(parameter: str, message: Optional[str] = None) -> dict:
        return {
            "error": "missing_parameter",
            "parameter": parameter,
            "message": message or f"{parameter} is required"
        }

    @staticmethod
    def invalid_parameter(parameter: str, message: str, value: Optional[Any] = None) -> dict:
        response = {
            "error": "invalid_parameter",
            "parameter": parameter,
            "message": message
        }
        if value is not None:
            response["received_value"] = str(value)[:100]  # Truncate for safety
        return response

    @staticmethod
    def validation_error(message: str, details: Optional[dict] = None) -> dict:
        response = {
            "error": "validation_error",
            "parameter": None,
            "message": message
        }
        if details:
            response["details"] = details
        return response


def raise_missing_parameter(parameter: str, message: Optional[str] = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=ValidationErrorResponse.missing_parameter(parameter, message)
    )


def raise_invalid_parameter(parameter: str, message: str, value: Optional[Any] = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=ValidationErrorResponse.invalid_parameter(parameter, message, value)
    )


def raise_for_validation_error(error: ValidationError) -> NoReturn:
    """
    Translate the first pydantic error into a structured 400.

    A missing or blank value is reported as missing_parameter.
    """
    first = error.errors()[0]
    location = first.get("loc") or ()
    parameter = str(location[0]) if location else None

    if parameter is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ValidationErrorResponse.validation_error(first.get("msg", "Invalid request"))
        )

    if first.get("type") in ("missing", "string_too_short"):
        raise_missing_parameter(parameter)

    raise_invalid_parameter(parameter, first.get("msg", "Invalid value"), first.get("input"))
