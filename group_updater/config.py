"""Load a Job from a TOML configuration file.

Settings live under [tool.group-updater] (so they can sit in a project's
pyproject.toml) or at the top level of a dedicated file. Keys use dashes,
as in the rest of pyproject.toml:

    [tool.group-updater]
    package-manager = "pip"
    index-path = "index.json"

    [[tool.group-updater.groups]]
    name = "web"
    dependencies = ["flask", "werkzeug"]
    update-types = ["minor", "patch"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from packaging.utils import canonicalize_name
from pydantic import ValidationError
from tomlkit.exceptions import ParseError

from .admission import SEMVER_LEVELS
from .errors import ConfigError
from .job import GroupConfig, Job
from .toml import get_tool_table, load_toml

TOOL_NAME = "group-updater"


def _snake(key: str) -> str:
    return key.replace("-", "_")


def _snake_keys(table: dict[str, Any]) -> dict[str, Any]:
    return {_snake(k): v for k, v in table.items()}


def parse_group(raw: dict[str, Any]) -> GroupConfig:
    """Build a GroupConfig from a [[groups]] table.

    Every key other than name and dependencies is kept as a rule, with its
    original (dashed) spelling, e.g. "update-types".

    Raises:
        ConfigError: If update-types holds anything but major/minor/patch.
    """
    if "name" not in raw:
        raise ConfigError("Every group needs a name")
    rules = {k: v for k, v in raw.items() if k not in ("name", "dependencies")}
    update_types = rules.get("update-types")
    if update_types is not None:
        unknown = [t for t in update_types if t not in SEMVER_LEVELS]
        if unknown:
            raise ConfigError(
                f"Group {raw['name']}: unknown update-types {', '.join(unknown)}"
            )
    return GroupConfig(
        name=raw["name"],
        dependencies=[canonicalize_name(d) for d in raw.get("dependencies", [])],
        rules=rules,
    )


def job_from_table(table: dict[str, Any], base_dir: Path | None = None) -> Job:
    """Build a Job from a plain settings table.

    Relative index and repository paths are resolved against base_dir.

    Raises:
        ConfigError: If required settings are missing or malformed.
    """
    settings = dict(table)
    groups = [parse_group(g) for g in settings.pop("groups", [])]
    ignore = [_snake_keys(c) for c in settings.pop("ignore", [])]
    advisories = [_snake_keys(a) for a in settings.pop("security-advisories", [])]
    existing = [
        p if isinstance(p, dict) else {"dependency-group-name": p}
        for p in settings.pop("existing-group-pull-requests", [])
    ]
    fields = _snake_keys(settings)

    if base_dir is not None:
        for key in ("index_path", "repo_contents_path"):
            if fields.get(key):
                fields[key] = str((base_dir / fields[key]).resolve())

    try:
        return Job(
            **fields,
            groups=groups,
            ignore_conditions=ignore,
            security_advisories=advisories,
            existing_group_pull_requests=existing,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Path) -> Job:
    """Load a Job from a TOML file.

    Raises:
        ConfigError: If the file is missing, not valid TOML, or invalid.
    """
    try:
        doc = load_toml(path)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except ParseError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    table = get_tool_table(doc, TOOL_NAME)
    if table is None:
        table = doc
    return job_from_table(table.unwrap() if hasattr(table, "unwrap") else dict(table), path.parent)
