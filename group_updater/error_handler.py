"""Collects and logs errors raised while updating individual dependencies."""

from __future__ import annotations

import logging
import traceback

from pydantic import BaseModel, Field

from .errors import GroupUpdaterError
from .models import Dependency, DependencyGroup

logger = logging.getLogger("group_updater.error_handler")


class ErrorRecord(BaseModel):
    """One reported dependency error.

    Attributes:
        error_type: Stable error type (see errors.py), "unknown_error" for
            exceptions this package does not define.
        dependency_name: The dependency being processed.
        group_name: The group being compiled, when known.
        detail: Human-readable detail, usually the exception message.
    """

    error_type: str
    dependency_name: str | None = None
    group_name: str | None = None
    detail: dict[str, str] = Field(default_factory=dict)


class ErrorHandler:
    """Sink for dependency errors. Never raises."""

    def __init__(self) -> None:
        self.errors: list[ErrorRecord] = []

    def log_dependency_error(
        self,
        dependency: Dependency | None,
        error: Exception,
        error_type: str,
        error_detail: str | None = None,
        dependency_group: DependencyGroup | None = None,
    ) -> None:
        """Record an error that has already been classified."""
        record = ErrorRecord(
            error_type=error_type,
            dependency_name=dependency.name if dependency else None,
            group_name=dependency_group.name if dependency_group else None,
            detail={"message": error_detail or str(error)},
        )
        self.errors.append(record)
        logger.error(
            "Error processing %s (%s): %s",
            record.dependency_name or "<unknown>",
            error_type,
            record.detail["message"],
        )

    def handle_dependency_error(
        self,
        error: Exception,
        dependency: Dependency | None,
        dependency_group: DependencyGroup | None = None,
    ) -> None:
        """Classify an arbitrary exception and record it."""
        if isinstance(error, GroupUpdaterError):
            error_type = error.error_type
        else:
            error_type = "unknown_error"
            logger.debug(
                "".join(traceback.format_exception(type(error), error, error.__traceback__))
            )
        self.log_dependency_error(
            dependency=dependency,
            error=error,
            error_type=error_type,
            error_detail=str(error),
            dependency_group=dependency_group,
        )

    def errors_for(self, dependency_name: str) -> list[ErrorRecord]:
        return [e for e in self.errors if e.dependency_name == dependency_name]
