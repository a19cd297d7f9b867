"""Exception types with stable, machine-readable error types.

The error type strings are what the error handler records, so they must not
change between releases.
"""

from __future__ import annotations

from collections.abc import Mapping


class GroupUpdaterError(Exception):
    """Base error carrying an error type and optional detail."""

    error_type = "unknown_error"

    def __init__(self, message: str, *, detail: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.detail = dict(detail or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        for k, v in self.detail.items():
            if v:
                parts.append(f"  {k}: {v}")
        return "\n".join(parts)


class InconsistentRegistryResponse(GroupUpdaterError):
    """The registry returned data that contradicts itself (often transient)."""

    error_type = "inconsistent_registry_response"


class AllVersionsIgnored(GroupUpdaterError):
    error_type = "all_versions_ignored"


class ChangeBuildError(GroupUpdaterError):
    """The file updater could not turn updated dependencies into file changes."""

    error_type = "change_build_failed"


class DependencyFileNotParseable(GroupUpdaterError):
    error_type = "dependency_file_not_parseable"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Unable to parse {path}", detail={"reason": reason})
        self.path = path


class UnknownPackageManager(GroupUpdaterError):
    error_type = "unknown_package_manager"

    def __init__(self, package_manager: str) -> None:
        super().__init__(f"No ecosystem registered for '{package_manager}'")
        self.package_manager = package_manager


class ConfigError(GroupUpdaterError):
    error_type = "invalid_config"


class WorkspaceError(GroupUpdaterError):
    """The git workspace for a cloned checkout could not be prepared."""

    error_type = "workspace_error"
