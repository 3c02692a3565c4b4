"""Custom exceptions for the projection engine."""

from __future__ import annotations


class ProjectionError(Exception):
    """Base exception for projection engine errors."""

    pass


class ValidationError(ProjectionError):
    """Raised when a parameter or heir configuration is malformed."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class TableError(ProjectionError):
    """Raised when a compiled-in tax table is malformed or incomplete."""

    def __init__(self, table: str, message: str) -> None:
        self.table = table
        self.message = message
        super().__init__(f"{table}: {message}")
