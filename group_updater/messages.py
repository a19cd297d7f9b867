"""PR title, PR body and commit message text for a change.

Applications get "Bump X from 1.0 to 1.1" wording. When any dependency has
no previous version (a library that only declares ranges) the wording
switches to requirement updates: "Update X requirement from >=1.0 to >=2.0".
"""

from __future__ import annotations

import re
from typing import Any

from .models import Dependency, DependencyFile

SHA_PATTERN = re.compile(r"^[0-9a-f]{40}$")
MAX_SUBJECT_LENGTH = 72


def _join_names(names: list[str]) -> str:
    """"a" → "a", ["a", "b", "c"] → "a, b and c"."""
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"


def _source_ref(requirements: list[dict[str, Any]] | None) -> str | None:
    refs = {
        (r.get("source") or {}).get("ref")
        for r in requirements or []
        if (r.get("source") or {}).get("ref")
    }
    return refs.pop() if len(refs) == 1 else None


class MessageBuilder:
    """Render the human-readable text for a set of updated dependencies.

    Args:
        dependencies: Updated dependencies, lead first.
        files: Updated files (used for the directory suffix).
        pr_message_header: Text placed before the PR body.
        pr_message_footer: Text placed after the PR body.
        commit_message_options: "prefix" and "signoff_details" (a dict with
            name/email and optionally org_name/org_email).
        vulnerabilities_fixed: Map of dependency name → advisories fixed.
    """

    def __init__(
        self,
        dependencies: list[Dependency],
        files: list[DependencyFile],
        pr_message_header: str | None = None,
        pr_message_footer: str | None = None,
        commit_message_options: dict[str, Any] | None = None,
        vulnerabilities_fixed: dict[str, list[Any]] | None = None,
    ) -> None:
        if not dependencies:
            raise ValueError("MessageBuilder needs at least one dependency")
        self.dependencies = dependencies
        self.files = files
        self.pr_message_header = pr_message_header
        self.pr_message_footer = pr_message_footer
        self.commit_message_options = commit_message_options or {}
        self.vulnerabilities_fixed = vulnerabilities_fixed or {}

    # -- public text ---------------------------------------------------------

    def pr_name(self) -> str:
        name = self._pr_name_prefix()
        name += self._library_pr_name() if self.library() else self._application_pr_name()
        directory = self.files[0].directory if self.files else "/"
        if directory in ("", "/"):
            return name
        return f"{name} in {directory}"

    def pr_message(self) -> str:
        header = f"{self.pr_message_header}\n\n" if self.pr_message_header else ""
        footer = f"\n\n{self.pr_message_footer}" if self.pr_message_footer else ""
        return header + self._commit_message_intro() + self._cascades() + footer

    def commit_message(self) -> str:
        message = self.commit_subject() + "\n\n" + self._commit_message_intro()
        trailers = self._message_trailers()
        if trailers:
            message += "\n\n" + trailers
        return message

    def commit_subject(self) -> str:
        subject = self.pr_name()
        if len(subject) <= MAX_SUBJECT_LENGTH:
            return subject
        subject = re.sub(r" from \S*? to \S*", "", subject)
        if len(subject) <= MAX_SUBJECT_LENGTH:
            return subject
        return subject.split(" in ")[0]

    def library(self) -> bool:
        return any(self.previous_version(d) is None for d in self.dependencies)

    # -- titles --------------------------------------------------------------

    def _pr_name_prefix(self) -> str:
        prefix = self.commit_message_options.get("prefix")
        return f"{prefix}: " if prefix else ""

    def _first_word(self, word: str) -> str:
        return word if self.commit_message_options.get("prefix") else word.capitalize()

    def _library_pr_name(self) -> str:
        name = self._first_word("update") + " "
        if len(self.dependencies) == 1:
            dep = self.dependencies[0]
            return (
                f"{name}{dep.display_name} requirement "
                f"{self._from_version_msg(self._old_library_requirement(dep))}"
                f"to {self._new_library_requirement(dep)}"
            )
        return f"{name}requirements for {_join_names([d.name for d in self.dependencies])}"

    def _application_pr_name(self) -> str:
        name = self._first_word("bump") + " "
        dep = self.dependencies[0]
        versions = f"{self._from_version_msg(self.previous_version(dep))}to {self.new_version(dep)}"
        if len(self.dependencies) == 1:
            return f"{name}{dep.display_name} {versions}"
        if self._property_name():
            return f"{name}{self._property_name()} {versions}"
        if self._dependency_set():
            return f"{name}{self._dependency_set()} dependency set {versions}"
        return name + _join_names([d.name for d in self.dependencies])

    # -- body ----------------------------------------------------------------

    def _commit_message_intro(self) -> str:
        if self.library():
            return self._requirement_intro()
        return self._version_intro()

    def _requirement_intro(self) -> str:
        names = _join_names([d.display_name for d in self.dependencies])
        return f"Updates the requirements on {names} to permit the latest version."

    def _version_intro(self) -> str:
        dep = self.dependencies[0]
        versions = f"{self._from_version_msg(self.previous_version(dep))}to {self.new_version(dep)}."
        if len(self.dependencies) > 1:
            if self._property_name():
                return f"Bumps `{self._property_name()}` {versions}"
            if self._dependency_set():
                return f"Bumps `{self._dependency_set()}` dependency set {versions}"
            names = _join_names([d.display_name for d in self.dependencies])
            return f"Bumps {names}. These dependencies needed to be updated together."

        msg = f"Bumps {dep.display_name} {versions}"
        if self._switching_from_ref_to_release(dep):
            msg += " This release includes the previously tagged commit."
        return msg + self._security_remark(dep)

    def _cascades(self) -> str:
        if len(self.dependencies) == 1:
            return ""
        return "".join(
            f"\nUpdates `{dep.display_name}` "
            f"{self._from_version_msg(self.previous_version(dep))}"
            f"to {self.new_version(dep)}{self._security_remark(dep)}"
            for dep in self.dependencies
        )

    def _security_remark(self, dep: Dependency) -> str:
        fixed = self.vulnerabilities_fixed.get(dep.name) or []
        if len(fixed) == 1:
            return " **This update includes a security fix.**"
        if fixed:
            return " **This update includes security fixes.**"
        return ""

    def _message_trailers(self) -> str | None:
        details = self.commit_message_options.get("signoff_details")
        if not isinstance(details, dict):
            return None
        trailers: list[str] = []
        if details.get("org_name") and details.get("org_email"):
            trailers.append(f"On-behalf-of: @{details['org_name']} <{details['org_email']}>")
        if details.get("name") and details.get("email"):
            trailers.append(f"Signed-off-by: {details['name']} <{details['email']}>")
        return "\n".join(trailers) or None

    # -- versions ------------------------------------------------------------

    @staticmethod
    def _from_version_msg(previous: str | None) -> str:
        return f"from {previous} " if previous else ""

    def _ref_changed(self, dep: Dependency) -> bool:
        return _source_ref(dep.previous_requirements) != _source_ref(dep.requirements)

    def previous_version(self, dep: Dependency) -> str | None:
        # Without a previous version, a changed ref stands in for it
        if dep.previous_version is None:
            return _source_ref(dep.previous_requirements) if self._ref_changed(dep) else None
        if SHA_PATTERN.match(dep.previous_version):
            previous_ref = _source_ref(dep.previous_requirements)
            if self._ref_changed(dep) and previous_ref:
                return previous_ref
            return f"`{dep.previous_version[:7]}`"
        return dep.previous_version

    def new_version(self, dep: Dependency) -> str | None:
        if dep.version and SHA_PATTERN.match(dep.version):
            new_ref = _source_ref(dep.requirements)
            if self._ref_changed(dep) and new_ref:
                return new_ref
            return f"`{dep.version[:7]}`"
        return dep.version

    def _switching_from_ref_to_release(self, dep: Dependency) -> bool:
        from_ref = (dep.previous_version and SHA_PATTERN.match(dep.previous_version)) or (
            dep.previous_version is None and _source_ref(dep.previous_requirements)
        )
        return bool(from_ref) and bool(dep.version) and not SHA_PATTERN.match(dep.version or "")

    def _changed_requirements(self, dep: Dependency, old: bool) -> list[dict[str, Any]]:
        before, after = dep.previous_requirements or [], dep.requirements
        source, other = (before, after) if old else (after, before)
        return [r for r in source if r not in other]

    def _old_library_requirement(self, dep: Dependency) -> str | None:
        changed = self._changed_requirements(dep, old=True)
        if changed and changed[0].get("requirement"):
            return changed[0]["requirement"]
        return _source_ref(dep.previous_requirements) if self._ref_changed(dep) else None

    def _new_library_requirement(self, dep: Dependency) -> str:
        changed = self._changed_requirements(dep, old=False)
        if changed and changed[0].get("requirement"):
            return changed[0]["requirement"]
        new_ref = _source_ref(dep.requirements)
        if self._ref_changed(dep) and new_ref:
            return new_ref
        return dep.version or "the latest version"

    # -- metadata ------------------------------------------------------------

    def _metadata_value(self, key: str) -> str | None:
        for r in self.dependencies[0].requirements:
            value = (r.get("metadata") or {}).get(key)
            if value:
                return value
        return None

    def _property_name(self) -> str | None:
        return self._metadata_value("property_name")

    def _dependency_set(self) -> str | None:
        return self._metadata_value("dependency_set")
