from __future__ import annotations

import importlib.util
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType

import pytest

from git_tags import PushError, ResolutionError


REPO_ROOT = Path(__file__).resolve().parents[1]


def load_script_module(module_name: str, relative_path: str) -> ModuleType:
    module_path = REPO_ROOT / relative_path
    scripts_dir = str(module_path.parent)
    if scripts_dir not in sys.path:
        sys.path.insert(0, scripts_dir)

    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"unable to load module from {module_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="session")
def tag_floating_version():
    return load_script_module("floating_tags_tag_floating_version", "scripts/tag-floating-version.py")


SHA_A = "a" * 40
SHA_B = "b" * 40


class FakeGit:
    """In-memory GitTagOps: local and remote tag namespaces plus a ref table."""

    def __init__(self, refs: dict[str, str] | None = None, *, reject_push: str | None = None):
        self.refs = dict(refs or {})
        self.local_tags: dict[str, str] = {}
        self.remote_tags: dict[str, str] = {}
        self.reject_push = reject_push
        self.calls: list[tuple[str, ...]] = []

    def resolve_commit(self, ref: str) -> str:
        self.calls.append(("resolve_commit", ref))
        if ref.startswith("refs/tags/"):
            sha = self.local_tags.get(ref[len("refs/tags/"):])
        else:
            sha = self.local_tags.get(ref) or self.refs.get(ref)
        if sha is None:
            raise ResolutionError(f'Failed to resolve commit SHA for "{ref}": unknown revision')
        return sha

    def tag_exists(self, tag_name: str) -> bool:
        self.calls.append(("tag_exists", tag_name))
        return tag_name in self.local_tags

    def create_tag(self, tag_name: str, commit_sha: str) -> None:
        self.calls.append(("create_tag", tag_name, commit_sha))
        assert tag_name not in self.local_tags, f"tag {tag_name} already exists"
        self.local_tags[tag_name] = commit_sha

    def force_update_tag(self, tag_name: str, commit_sha: str) -> None:
        self.calls.append(("force_update_tag", tag_name, commit_sha))
        self.local_tags[tag_name] = commit_sha

    def push_tag(self, tag_name: str, force: bool) -> None:
        self.calls.append(("push_tag", tag_name, str(force)))
        if self.reject_push == tag_name:
            raise PushError(f"Failed to push tag {tag_name}: ! [remote rejected] {tag_name} (protected tag)")
        if tag_name in self.remote_tags and not force:
            raise PushError(f"Failed to push tag {tag_name}: ! [rejected] {tag_name} (already exists)")
        self.remote_tags[tag_name] = self.local_tags[tag_name]

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_git_factory():
    return FakeGit


def git(*args: str, cwd: Path) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@dataclass
class GitRepo:
    work: Path
    remote: Path

    def git(self, *args: str) -> str:
        return git(*args, cwd=self.work)

    def commit(self, message: str) -> str:
        with (self.work / "CHANGES.md").open("a", encoding="utf-8") as handle:
            handle.write(f"{message}\n")
        self.git("add", "CHANGES.md")
        self.git("commit", "-m", message)
        return self.git("rev-parse", "HEAD")

    def tag_sha(self, tag_name: str) -> str | None:
        result = subprocess.run(
            ["git", "rev-parse", "--verify", "--quiet", f"refs/tags/{tag_name}^{{commit}}"],
            cwd=self.work,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip() or None

    def remote_tag_sha(self, tag_name: str) -> str | None:
        result = subprocess.run(
            ["git", "--git-dir", str(self.remote), "rev-parse", "--verify", "--quiet", f"refs/tags/{tag_name}^{{commit}}"],
            cwd=self.work,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip() or None


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch) -> GitRepo:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    work = tmp_path / "work"
    remote = tmp_path / "remote.git"
    work.mkdir()
    for key in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("HOME", str(tmp_path))

    git("init", "--bare", str(remote), cwd=tmp_path)
    git("init", cwd=work)
    git("config", "user.name", "Release Bot", cwd=work)
    git("config", "user.email", "release-bot@example.com", cwd=work)
    git("config", "commit.gpgsign", "false", cwd=work)
    git("config", "tag.gpgsign", "false", cwd=work)
    git("remote", "add", "origin", str(remote), cwd=work)

    repo = GitRepo(work=work, remote=remote)
    repo.commit("init")
    return repo
