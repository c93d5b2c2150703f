"""
Utils Package

Provides utility modules for:
- validation_errors: Structured 400 responses for missing/invalid parameters
"""

from .validation_errors import (
    ValidationErrorResponse,
    raise_missing_parameter,
    raise_invalid_parameter,
    raise_for_validation_error,
)

__all__ = [
    'ValidationErrorResponse',
    'raise_missing_parameter',
    'raise_invalid_parameter',
    'raise_for_validation_error',
]
