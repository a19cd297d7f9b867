"""Semver admission rules for groups restricted by update-types.

A group may declare which kinds of version jump it accepts. When the latest
version of a dependency is a bigger jump than the group allows, the
dependency is left out of the group so it can be updated individually or by
another group that fits.
"""

from __future__ import annotations

from collections.abc import Collection

from .versions import VersionGrammar, semver_segments

SEMVER_LEVELS = ("major", "minor", "patch")


def semver_rules_allow_grouping(
    update_types: Collection[str] | None,
    current_version: str | None,
    latest_version: str | None,
    grammar: VersionGrammar,
) -> bool:
    """Decide whether a current → latest jump may be included in a group.

    The highest-order segment that increased decides: a major bump needs
    "major" in update_types, a minor bump "minor", a patch bump "patch".
    Anything the grammar cannot classify is excluded.

    Args:
        update_types: The group's allowed update types, or None/empty when
            the group has no semver rules.
        current_version: The dependency's current version.
        latest_version: The checker's latest version.
        grammar: The ecosystem's version grammar.

    Examples:
        With update_types={"minor"} and current "1.2.3":
        "1.3.0" → True, "2.0.0" → False, "1.2.4" → False,
        "1.2.3-beta" → False (no recognised increase).
    """
    if not update_types:
        return True

    if current_version is None or latest_version is None:
        return False
    if not (grammar.correct(current_version) and grammar.correct(latest_version)):
        return False

    current = semver_segments(grammar.segments(current_version))
    latest = semver_segments(grammar.segments(latest_version))

    # Segments must be of the same kind to be compared at all
    if not all(type(current[k]) is type(latest[k]) for k in SEMVER_LEVELS):
        return False

    for level in SEMVER_LEVELS:
        if latest[level] > current[level]:
            return level in update_types

    # Some ecosystems don't do semver exactly; anything else goes individual
    return False
