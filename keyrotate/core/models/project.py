"""
Project model — a CI project as listed by the platform API.

Projects are fetched fresh on every run and never persisted locally,
except as a name in the completed-projects ledger once rotated.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# Only "pro" projects run the full pipeline with an AES key + jet.
PROJECT_TYPE_PRO = "pro"
PROJECT_TYPE_BASIC = "basic"


class CIProject(BaseModel):
    """A CI project and its current symmetric key material."""

    uuid: str = ""
    name: str                               # qualified: "org/repo"
    type: str = PROJECT_TYPE_BASIC
    repository_url: str = ""
    repository_provider: str = ""           # "github", "bitbucket", ...
    aes_key: str = ""

    @property
    def is_pro(self) -> bool:
        return self.type.lower() == PROJECT_TYPE_PRO

    @property
    def folder_name(self) -> str:
        """Local checkout directory: last path segment of the name."""
        return self.name.rstrip("/").rsplit("/", 1)[-1]


class ProjectPage(BaseModel):
    """One page of the paginated project listing."""

    projects: list[CIProject] = Field(default_factory=list)
    page: int = 1
    per_page: int = 0
    total: int = 0
    next_page: int | None = None            # None on the last page

    @property
    def is_last(self) -> bool:
        return self.next_page is None
