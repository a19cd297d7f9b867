"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings and rewriting
their version specifiers when a dependency is updated.
"""

from __future__ import annotations

from collections.abc import Mapping

from packaging.requirements import InvalidRequirement, Requirement
from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name

from .errors import DependencyFileNotParseable

PIN_OPERATORS = ("==", "===", "~=")
UPPER_BOUND_OPERATORS = ("<", "<=")


def parse_requirement(dep_str: str, path: str) -> Requirement:
    """Parse a PEP 508 string, reporting failures against the file's path."""
    try:
        return Requirement(dep_str)
    except InvalidRequirement as exc:
        raise DependencyFileNotParseable(path, str(exc)) from exc


def pinned_version(req: Requirement) -> str | None:
    """Return the exact version a requirement pins, if any.

    Examples:
        "requests==2.31.0" → "2.31.0"
        "requests>=2.0" → None
    """
    for spec in req.specifier:
        if spec.operator in ("==", "===") and "*" not in spec.version:
            return spec.version
    return None


def _sorted_specs(specifier: SpecifierSet) -> list:
    return sorted(specifier, key=str)


def update_specifier(specifier: SpecifierSet, target: str) -> str:
    """Rewrite a specifier set so that it admits the target version.

    Pins (==, ===, ~=) move to the target. Other sets are left alone when
    they already admit the target; otherwise upper bounds are dropped and
    any remaining bound that rejects the target is replaced by >=target.

    Examples:
        "==1.0.0", "1.2.0" → "==1.2.0"
        ">=1.0,<2", "1.5" → "<2,>=1.0"
        ">=1.0,<2", "2.1" → ">=1.0"
        "", "2.1" → ""
    """
    specs = _sorted_specs(specifier)
    pins = [s for s in specs if s.operator in PIN_OPERATORS]
    if pins:
        return f"{pins[0].operator}{target}"
    if not specs or specifier.contains(target, prereleases=True):
        return str(specifier)

    kept = [
        str(s)
        for s in specs
        if s.operator not in UPPER_BOUND_OPERATORS and s.contains(target, prereleases=True)
    ]
    if not kept:
        kept = [f">={target}"]
    return str(SpecifierSet(",".join(kept)))


def render_requirement(req: Requirement, specifier: str) -> str:
    """Render a requirement with a new specifier, keeping extras and markers.

    Extras are sorted alphabetically for consistent output.
    """
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    rendered = f"{req.name}{extras}{specifier}"
    if req.marker is not None:
        rendered += f"; {req.marker}"
    return rendered


def update_dep_list(deps: list, requirements: Mapping[str, list[str | None]]) -> bool:
    """Rewrite the specifiers of a dependency list in place.

    A package may be listed more than once (e.g. with different markers),
    so new specifiers are given per occurrence, in list order. Entries whose
    specifier is unchanged are left byte-for-byte as they were.

    Args:
        deps: List of dependency strings (a live tomlkit array).
        requirements: Map of canonical package name → new specifier text
            for each of its occurrences in this list.

    Returns:
        True if any entry changed.
    """
    changed = False
    occurrence: dict[str, int] = {}
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        req = Requirement(str(dep_str))
        name = canonicalize_name(req.name)
        if name not in requirements:
            continue
        k = occurrence.get(name, 0)
        occurrence[name] = k + 1
        if k >= len(requirements[name]):
            continue
        specifier = requirements[name][k] or ""
        if specifier != str(req.specifier):
            deps[i] = render_requirement(req, specifier)
            changed = True
    return changed
