"""
Tests for the workspace manager — clone, key file lifecycle, cleanup.
"""

import os
import stat
from pathlib import Path

import pytest

from conftest import make_project
from keyrotate.core.services.workspace import (
    KEY_FILENAME,
    CheckoutError,
    CleanupError,
    CloneError,
    WorkspaceError,
    WorkspaceManager,
    clone_url,
)


class TestCloneUrl:
    def test_github(self):
        assert clone_url(make_project("acme/api")) == "git@github.com:acme/api.git"

    def test_bitbucket(self):
        project = make_project("acme/api", provider="bitbucket")
        assert clone_url(project) == "git@bitbucket.org:acme/api.git"

    def test_provider_is_case_insensitive(self):
        project = make_project("acme/api", provider="GitHub")
        assert clone_url(project) == "git@github.com:acme/api.git"

    def test_unknown_provider_is_empty(self):
        assert clone_url(make_project(provider="gitlab")) == ""


class TestFolderName:
    def test_last_segment(self):
        assert make_project("acme/team/api").folder_name == "api"

    def test_unqualified(self):
        assert make_project("api").folder_name == "api"


class TestMaterialize:
    def test_clones_into_base_dir(self, tmp_path: Path, registry, git, add_repo):
        project = make_project()
        add_repo(project, {"app.encrypted": "x"})
        manager = WorkspaceManager(registry, tmp_path)

        path = manager.materialize(project)

        assert path == tmp_path / "api"
        assert (path / "app.encrypted").is_file()
        assert git.calls[0].cwd == str(tmp_path)

    def test_checks_out_base_branch(self, tmp_path: Path, registry, git, add_repo):
        project = make_project()
        add_repo(project, {})
        manager = WorkspaceManager(registry, tmp_path, checkout_branch="develop")

        manager.materialize(project)

        checkout = git.calls[1]
        assert checkout.action.params == {"operation": "checkout", "branch": "develop"}
        assert checkout.cwd == str(tmp_path / "api")

    def test_clone_failure_carries_output(self, tmp_path: Path, registry, git):
        git.fail_ids.add("clone")
        manager = WorkspaceManager(registry, tmp_path)

        with pytest.raises(CloneError) as exc_info:
            manager.materialize(make_project())

        assert "simulated failure" in str(exc_info.value)
        assert exc_info.value.receipt is not None
        assert exc_info.value.receipt.failed

    def test_unsupported_provider(self, tmp_path: Path, registry):
        manager = WorkspaceManager(registry, tmp_path)
        with pytest.raises(CloneError, match="unsupported provider"):
            manager.materialize(make_project(provider="gitlab"))

    def test_checkout_failure(self, tmp_path: Path, registry, git, add_repo):
        project = make_project()
        add_repo(project, {})
        git.fail_ids.add("checkout")
        manager = WorkspaceManager(registry, tmp_path, checkout_branch="develop")

        with pytest.raises(CheckoutError, match="failed to checkout branch develop"):
            manager.materialize(project)

    def test_missing_directory_after_clone(self, tmp_path: Path, registry, git, monkeypatch):
        # A clone that "succeeds" without producing the directory
        from keyrotate.core.models.action import Receipt

        monkeypatch.setattr(
            git, "execute", lambda ctx: Receipt.success(adapter="git", action_id=ctx.action.id)
        )
        manager = WorkspaceManager(registry, tmp_path)

        with pytest.raises(WorkspaceError, match="failed to change dir"):
            manager.materialize(make_project())

    def test_checkout_failure_removes_fresh_clone(self, tmp_path: Path, registry, git, add_repo):
        project = make_project()
        add_repo(project, {"app.encrypted": "x"})
        git.fail_ids.add("checkout")
        manager = WorkspaceManager(registry, tmp_path, checkout_branch="develop")

        with pytest.raises(CheckoutError):
            manager.materialize(project)

        assert not (tmp_path / "api").exists()

    def test_foreign_directory_is_refused_untouched(self, tmp_path: Path, registry, git, add_repo):
        project = make_project()
        add_repo(project, {"new.txt": "fresh"})
        foreign = tmp_path / "api"
        foreign.mkdir()
        (foreign / "my-uncommitted-work.txt").write_text("keep me")
        manager = WorkspaceManager(registry, tmp_path)

        with pytest.raises(CloneError, match="already exists"):
            manager.materialize(project)

        assert (foreign / "my-uncommitted-work.txt").read_text() == "keep me"
        assert git.calls == []

    def test_foreign_git_checkout_is_refused(self, tmp_path: Path, registry, add_repo):
        project = make_project()
        add_repo(project, {"new.txt": "fresh"})
        foreign = tmp_path / "api"
        (foreign / ".git").mkdir(parents=True)
        (foreign / "README.md").write_text("someone else's clone")

        with pytest.raises(CloneError):
            WorkspaceManager(registry, tmp_path).materialize(project)

        assert (foreign / "README.md").is_file()

    def test_leftover_from_interrupted_run_is_replaced(self, tmp_path: Path, registry, add_repo):
        project = make_project()
        add_repo(project, {"new.txt": "fresh"})
        stale = tmp_path / "api"
        (stale / ".git").mkdir(parents=True)
        (stale / KEY_FILENAME).write_text("old-key")
        (stale / "app.decrypted").write_text("plaintext")
        manager = WorkspaceManager(registry, tmp_path)

        path = manager.materialize(project)

        assert sorted(p.name for p in path.iterdir()) == ["new.txt"]


class TestIsLeftover:
    def test_requires_git_and_artifacts(self, tmp_path: Path, registry):
        manager = WorkspaceManager(registry, tmp_path)
        path = tmp_path / "api"
        path.mkdir()
        (path / "app.decrypted").write_text("x")
        assert not manager.is_leftover(path)

        (path / ".git").mkdir()
        assert manager.is_leftover(path)

    def test_clean_checkout_is_not_leftover(self, tmp_path: Path, registry):
        path = tmp_path / "api"
        (path / ".git").mkdir(parents=True)
        (path / "app.encrypted").write_text("x")
        assert not WorkspaceManager(registry, tmp_path).is_leftover(path)

    def test_missing_path(self, tmp_path: Path, registry):
        assert not WorkspaceManager(registry, tmp_path).is_leftover(tmp_path / "nope")


class TestTeardown:
    def test_removes_tree(self, tmp_path: Path, registry):
        target = tmp_path / "api"
        (target / "nested").mkdir(parents=True)
        (target / "nested" / "file").write_text("x")

        assert WorkspaceManager(registry, tmp_path).teardown(target)
        assert not target.exists()

    def test_missing_is_fine(self, tmp_path: Path, registry):
        assert WorkspaceManager(registry, tmp_path).teardown(tmp_path / "nope")

    def test_failure_returns_false(self, tmp_path: Path, registry, monkeypatch):
        target = tmp_path / "api"
        target.mkdir()

        def boom(path):
            raise OSError("device busy")

        monkeypatch.setattr("keyrotate.core.services.workspace.shutil.rmtree", boom)
        assert WorkspaceManager(registry, tmp_path).teardown(target) is False


class TestKeyFile:
    def test_write_is_owner_only(self, tmp_path: Path, registry):
        manager = WorkspaceManager(registry, tmp_path)
        path = manager.write_key_file(tmp_path, "secret-key")

        assert path.name == KEY_FILENAME
        assert path.read_text() == "secret-key"
        assert stat.S_IMODE(os.stat(path).st_mode) & 0o077 == 0

    def test_write_overwrites(self, tmp_path: Path, registry):
        manager = WorkspaceManager(registry, tmp_path)
        manager.write_key_file(tmp_path, "a-much-longer-old-key")
        manager.write_key_file(tmp_path, "new")
        assert manager.key_path(tmp_path).read_text() == "new"

    def test_remove_missing_raises(self, tmp_path: Path, registry):
        with pytest.raises(FileNotFoundError):
            WorkspaceManager(registry, tmp_path).remove_key_file(tmp_path)


class TestListFiles:
    def test_top_level_files_sorted(self, tmp_path: Path, registry):
        (tmp_path / "b.txt").write_text("")
        (tmp_path / "a.txt").write_text("")
        (tmp_path / "dir").mkdir()

        assert WorkspaceManager(registry, tmp_path).list_files(tmp_path) == ["a.txt", "b.txt"]

    def test_missing_directory(self, tmp_path: Path, registry):
        with pytest.raises(WorkspaceError):
            WorkspaceManager(registry, tmp_path).list_files(tmp_path / "missing")


class TestCleanupArtifacts:
    def test_removes_key_and_decrypted(self, tmp_path: Path, registry):
        manager = WorkspaceManager(registry, tmp_path)
        manager.write_key_file(tmp_path, "k")
        (tmp_path / "app.encrypted").write_text("c")
        (tmp_path / "app.encrypted.decrypted").write_text("p")
        (tmp_path / "notes.decrypted").write_text("p")

        removed = manager.cleanup_artifacts(tmp_path)

        assert sorted(removed) == [KEY_FILENAME, "app.encrypted.decrypted", "notes.decrypted"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["app.encrypted"]

    def test_missing_key_tolerated(self, tmp_path: Path, registry):
        (tmp_path / "x.decrypted").write_text("p")
        assert WorkspaceManager(registry, tmp_path).cleanup_artifacts(tmp_path) == ["x.decrypted"]

    def test_deletion_failure_raises(self, tmp_path: Path, registry, monkeypatch):
        manager = WorkspaceManager(registry, tmp_path)
        manager.write_key_file(tmp_path, "k")

        def refuse(self, missing_ok=False):
            raise PermissionError("denied")

        monkeypatch.setattr(Path, "unlink", refuse)
        with pytest.raises(CleanupError, match="FAILED TO DELETE FILE"):
            manager.cleanup_artifacts(tmp_path)
