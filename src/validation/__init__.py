"""Obligation validation package."""

from src.validation.validator import (
    ObligationValidationError,
    ObligationValidator,
    result_from_model_error,
)

__all__ = ["ObligationValidationError", "ObligationValidator", "result_from_model_error"]
