"""
Rotation configuration — loaded once from config.json, immutable for the run.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_MAX_PROJECTS_PER_RUN = 20


class SubstitutionRule(BaseModel):
    """A single find → replace pair, applied in declaration order."""

    model_config = ConfigDict(frozen=True)

    find: str
    replace: str


class RotationConfig(BaseModel):
    """Process-wide settings for one batch run.

    ``replacements`` keeps the JSON document order; use
    :attr:`substitution_rules` to iterate it deterministically.
    """

    model_config = ConfigDict(frozen=True)

    encrypted_file_patterns: list[str] = Field(default_factory=list)
    replacements: dict[str, str] = Field(default_factory=dict)
    checkout_branch: str = ""
    push_branch: str = ""
    max_projects_per_run: int = DEFAULT_MAX_PROJECTS_PER_RUN
    repo_filter_patterns: list[str] = Field(default_factory=list)
    reset_keys_in_projects_without_encrypted_files: bool = False

    # Whether a project with any failed re-encryption still counts as done.
    require_full_reencryption: bool = False

    @field_validator(
        "encrypted_file_patterns", "repo_filter_patterns", "replacements", mode="before"
    )
    @classmethod
    def _null_is_empty(cls, value: Any, info: ValidationInfo) -> Any:
        # Older config files carry ``null`` for empty collections.
        if value is None:
            return {} if info.field_name == "replacements" else []
        return value

    @field_validator("encrypted_file_patterns", "repo_filter_patterns")
    @classmethod
    def _patterns_compile(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid regular expression {pattern!r}: {e}") from e
        return value

    @field_validator("max_projects_per_run", mode="before")
    @classmethod
    def _default_batch_size(cls, value: Any) -> Any:
        if value is None or (isinstance(value, int) and value <= 0):
            return DEFAULT_MAX_PROJECTS_PER_RUN
        return value

    @property
    def substitution_rules(self) -> list[SubstitutionRule]:
        return [SubstitutionRule(find=k, replace=v) for k, v in self.replacements.items()]

    @property
    def encrypted_file_regexes(self) -> list[re.Pattern[str]]:
        return [re.compile(p) for p in self.encrypted_file_patterns]

    @property
    def repo_filter_regexes(self) -> list[re.Pattern[str]]:
        return [re.compile(p) for p in self.repo_filter_patterns]


def template_config() -> dict[str, Any]:
    """Placeholder document written when no config file exists yet."""
    return {
        "encrypted_file_patterns": [""],
        "replacements": {"find": "replace"},
        "checkout_branch": "",
        "push_branch": "",
        "max_projects_per_run": 0,
        "repo_filter_patterns": [],
        "reset_keys_in_projects_without_encrypted_files": False,
        "require_full_reencryption": False,
    }


class PlatformCredentials(BaseModel):
    """Credentials + organization used to talk to the CI platform API."""

    username: str
    password: str = Field(repr=False)
    organization: str
