"""Exceptions shared across netwatch modules."""


class ValidationError(ValueError):
    """Raised when input is rejected before any probe runs."""
