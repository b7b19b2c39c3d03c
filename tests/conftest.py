"""
Shared test fixtures and doubles.

The doubles stand in for the two external tools (git, jet) and for the
CI platform API, so whole rotations run inside ``tmp_path``.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from keyrotate.adapters.base import Adapter, ExecutionContext
from keyrotate.adapters.registry import AdapterRegistry
from keyrotate.core.engine.reporting import Reporter
from keyrotate.core.models.action import Receipt
from keyrotate.core.models.config import RotationConfig
from keyrotate.core.models.project import CIProject, ProjectPage
from keyrotate.core.services.codeship_api import CodeshipAPIError


def _should_fail(fail_ids: set[str], context: ExecutionContext) -> bool:
    action = context.action
    return action.id in fail_ids or f"{action.for_project}:{action.id}" in fail_ids


class StubAdapter(Adapter):
    """Tool double that always succeeds; availability is configurable."""

    def __init__(self, adapter_name: str, available: bool = True):
        self._name = adapter_name
        self._available = available
        self.calls: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self._available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self.calls.append(context)
        return Receipt.success(adapter=self._name, action_id=context.action.id)


class FakeGitAdapter(Adapter):
    """git double: clones from in-memory repos, records every call.

    ``repos`` maps clone URL → {filename: content}. At push time the
    workspace contents are captured in ``pushed`` so tests can inspect
    what would have been published.
    """

    def __init__(self, repos: dict[str, dict[str, str]] | None = None):
        self.repos = repos or {}
        self.fail_ids: set[str] = set()
        self.calls: list[ExecutionContext] = []
        self.pushed: dict[str, dict[str, str]] = {}

    @property
    def name(self) -> str:
        return "git"

    @property
    def operations(self) -> list[str]:
        return [c.action.params["operation"] for c in self.calls]

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if context.action.params.get("operation") == "clone" and not context.action.params.get("url"):
            return False, "Missing required param: 'url' for clone operation"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self.calls.append(context)
        action = context.action
        if _should_fail(self.fail_ids, context):
            return Receipt.failure(
                adapter="git",
                action_id=action.id,
                error=f"git {action.params['operation']} exited with code 128",
                output="fatal: simulated failure",
            )

        operation = action.params["operation"]
        if operation == "clone":
            dest = Path(context.cwd) / action.params["dest"]
            dest.mkdir(parents=True)
            for filename, content in self.repos.get(action.params["url"], {}).items():
                (dest / filename).write_text(content)
        elif operation == "push":
            workspace = Path(context.cwd)
            self.pushed[action.for_project or ""] = {
                p.name: p.read_text() for p in workspace.iterdir() if p.is_file()
            }
        return Receipt.success(adapter="git", action_id=action.id)


class CopyCryptoAdapter(Adapter):
    """jet double: encrypt/decrypt copy bytes; the key in use is recorded."""

    def __init__(self):
        self.fail_ids: set[str] = set()
        self.calls: list[ExecutionContext] = []
        self.keys_seen: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "jet"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self.calls.append(context)
        action = context.action
        params = action.params
        cwd = Path(context.cwd)

        key_path = Path(params["key_path"])
        self.keys_seen.append((action.id, key_path.read_text() if key_path.exists() else ""))

        if _should_fail(self.fail_ids, context):
            return Receipt.failure(
                adapter="jet",
                action_id=action.id,
                error=f"jet {params['operation']} exited with code 1",
                output="jet: cipher: message authentication failed",
            )
        shutil.copyfile(cwd / params["source"], cwd / params["target"])
        return Receipt.success(adapter="jet", action_id=action.id)


class FakeCodeship:
    """Paginated project directory plus AES key reset, in memory."""

    def __init__(self, pages: list[list[CIProject]] | None = None):
        self.pages = pages or [[]]
        self.fail_on_page: int | None = None
        self.fail_reset: set[str] = set()
        self.list_calls: list[int] = []
        self.reset_calls: list[str] = []
        self.organization_selected = False

    def select_organization(self, name: str | None = None):
        self.organization_selected = True

    def list_projects(self, page: int = 1, per_page: int = 50) -> ProjectPage:
        self.list_calls.append(page)
        if self.fail_on_page == page:
            raise CodeshipAPIError("list projects failed with HTTP 500: boom", status_code=500)
        return ProjectPage(
            projects=self.pages[page - 1],
            page=page,
            per_page=per_page,
            total=sum(len(p) for p in self.pages),
            next_page=page + 1 if page < len(self.pages) else None,
        )

    def reset_project_aes_key(self, project_uuid: str) -> CIProject:
        self.reset_calls.append(project_uuid)
        if project_uuid in self.fail_reset:
            raise CodeshipAPIError("reset AES key failed with HTTP 403: forbidden", status_code=403)
        for page in self.pages:
            for project in page:
                if project.uuid == project_uuid:
                    return project.model_copy(update={"aes_key": f"new-key-{project_uuid}"})
        raise CodeshipAPIError(f"reset AES key for {project_uuid} failed with HTTP 404", 404)


class RecordingReporter(Reporter):
    """Reporter that keeps every message for assertions."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def banner(self, title: str) -> None:
        self.messages.append(("banner", title))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def warn(self, message: str) -> None:
        self.messages.append(("warn", message))

    def alert(self, message: str) -> None:
        self.messages.append(("alert", message))

    def key_material(self, message: str) -> None:
        self.messages.append(("key_material", message))

    @property
    def alerts(self) -> list[str]:
        return [m for kind, m in self.messages if kind == "alert"]

    @property
    def key_notices(self) -> list[str]:
        return [m for kind, m in self.messages if kind == "key_material"]

    def text(self) -> str:
        return "\n".join(m for _, m in self.messages)


def make_project(
    name: str = "acme/api",
    uuid: str = "",
    provider: str = "github",
    type: str = "pro",
    aes_key: str = "old-key",
    repository_url: str | None = None,
) -> CIProject:
    host = "bitbucket.org" if provider == "bitbucket" else "github.com"
    return CIProject(
        uuid=uuid or f"uuid-{name.replace('/', '-')}",
        name=name,
        type=type,
        repository_url=repository_url if repository_url is not None else f"https://{host}/{name}",
        repository_provider=provider,
        aes_key=aes_key,
    )


def clone_url_for(project: CIProject) -> str:
    host = "bitbucket.org" if project.repository_provider == "bitbucket" else "github.com"
    return f"git@{host}:{project.name}.git"


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def project_factory():
    return make_project


@pytest.fixture
def git() -> FakeGitAdapter:
    return FakeGitAdapter()


@pytest.fixture
def jet() -> CopyCryptoAdapter:
    return CopyCryptoAdapter()


@pytest.fixture
def registry(git: FakeGitAdapter, jet: CopyCryptoAdapter) -> AdapterRegistry:
    reg = AdapterRegistry()
    reg.register(git)
    reg.register(jet)
    return reg


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def rotation_config() -> RotationConfig:
    return RotationConfig(
        encrypted_file_patterns=[r"\.encrypted$"],
        replacements={"OLD_SECRET": "NEW_SECRET", "old-token": "new-token"},
    )


@pytest.fixture
def add_repo(git: FakeGitAdapter):
    """Register repository contents for a project's clone URL."""

    def _add(project: CIProject, files: dict[str, str]) -> None:
        git.repos[clone_url_for(project)] = files

    return _add
