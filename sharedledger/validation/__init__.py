"""Validation package."""

from sharedledger.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator"]
