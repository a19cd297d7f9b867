"""Registry of ecosystem implementations, keyed by package manager.

The compiler never imports an ecosystem directly. It asks the registry for
the parser, checker, file updater and version grammar registered under the
job's package manager, so new ecosystems plug in with a single register()
call.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import UnknownPackageManager
from ..versions import GRAMMARS, VersionGrammar
from .base import FileParser, FileUpdater, Unlock, UpdateChecker


@dataclass(frozen=True)
class Ecosystem:
    """Factories for one package manager."""

    package_manager: str
    parser: type[FileParser]
    checker: type[UpdateChecker]
    file_updater: type[FileUpdater]
    version_grammar: VersionGrammar


_REGISTRY: dict[str, Ecosystem] = {}


def register(
    package_manager: str,
    *,
    parser: type[FileParser],
    checker: type[UpdateChecker],
    file_updater: type[FileUpdater],
    version_grammar: VersionGrammar | str = "semver",
) -> Ecosystem:
    """Register (or replace) the implementation for a package manager."""
    grammar = GRAMMARS[version_grammar] if isinstance(version_grammar, str) else version_grammar
    ecosystem = Ecosystem(package_manager, parser, checker, file_updater, grammar)
    _REGISTRY[package_manager] = ecosystem
    return ecosystem


def unregister(package_manager: str) -> None:
    _REGISTRY.pop(package_manager, None)


def for_package_manager(package_manager: str) -> Ecosystem:
    """Look up the implementation for a package manager.

    Raises:
        UnknownPackageManager: If nothing is registered under that key.
    """
    try:
        return _REGISTRY[package_manager]
    except KeyError:
        raise UnknownPackageManager(package_manager) from None


def registered_package_managers() -> list[str]:
    return sorted(_REGISTRY)


from .pip import PipFileParser, PipFileUpdater, PipUpdateChecker  # noqa: E402

register(
    "pip",
    parser=PipFileParser,
    checker=PipUpdateChecker,
    file_updater=PipFileUpdater,
    version_grammar="pep440",
)

__all__ = [
    "Ecosystem",
    "FileParser",
    "FileUpdater",
    "Unlock",
    "UpdateChecker",
    "for_package_manager",
    "register",
    "registered_package_managers",
    "unregister",
]
