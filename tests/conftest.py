"""Shared fixtures for rulesync tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union
from unittest.mock import Mock

import pytest

from rulesync.config import RetryConfig, RulesSyncConfig
from rulesync.sync import RetryingExecutor, SyncEngine

RULES_PATH = ".cursor/rules"
REMOTE_URL = "https://example.com/team/rules.git"


def _tree(root: Path) -> dict[str, bytes]:
    if not root.is_dir():
        return {}
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in root.rglob("*")
        if p.is_file() and ".git" not in p.relative_to(root).parts
    }


class FakeVersionControl:
    """In-memory stand-in for a git client.

    A plain directory plays the role of the remote repository: ``clone``
    copies it, ``status`` lists files that differ from it and ``push``
    mirrors the working copy back into it. Failures are queued per
    operation and raised one per call.
    """

    def __init__(self, remote_dir: Path):
        self.remote_dir = remote_dir
        self.workdir: Optional[Path] = None
        self.calls: list[str] = []
        self.commits: list[str] = []
        self.clone_errors: list[Exception] = []
        self.pull_errors: list[Exception] = []
        self.push_errors: list[Exception] = []

    def clone(self, url: str, dest_dir: Union[str, Path]) -> None:
        self.calls.append("clone")
        if self.clone_errors:
            raise self.clone_errors.pop(0)
        shutil.copytree(self.remote_dir, dest_dir)
        self.workdir = Path(dest_dir)

    def cwd(self, directory: Union[str, Path]) -> None:
        self.workdir = Path(directory)

    def status(self) -> list[str]:
        assert self.workdir is not None
        local = _tree(self.workdir)
        remote = _tree(self.remote_dir)
        return sorted(
            path
            for path in set(local) | set(remote)
            if local.get(path) != remote.get(path)
        )

    def add(self, pattern: str) -> None:
        self.calls.append("add")

    def commit(self, message: str) -> None:
        self.calls.append("commit")
        self.commits.append(message)

    def pull(self) -> None:
        self.calls.append("pull")
        if self.pull_errors:
            raise self.pull_errors.pop(0)

    def push(self) -> None:
        self.calls.append("push")
        if self.push_errors:
            raise self.push_errors.pop(0)
        assert self.workdir is not None
        shutil.rmtree(self.remote_dir)
        shutil.copytree(self.workdir, self.remote_dir)


def write_file(path: Path, content: str) -> Path:
    """Create ``path`` (and its parents) with ``content``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    return path


def read_file(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def workspace(temp_dir):
    """Workspace directory (rules live in ``.cursor/rules`` below it)."""
    path = temp_dir / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def remote(temp_dir):
    """Directory acting as the shared rules repository."""
    path = temp_dir / "remote"
    path.mkdir()
    return path


@pytest.fixture
def clones_dir(temp_dir):
    """Parent directory for temporary clones."""
    path = temp_dir / "clones"
    path.mkdir()
    return path


@pytest.fixture
def fake_vcs(remote):
    return FakeVersionControl(remote)


@pytest.fixture
def mock_sleep():
    return Mock()


@pytest.fixture
def sync_config():
    """Configuration with instant retries and immediate cleanup."""
    return RulesSyncConfig(
        remote_url=REMOTE_URL,
        rules_path=RULES_PATH,
        exclude_patterns=["my-project"],
        retry=RetryConfig(max_attempts=3, base_delay=0, max_delay=0),
        workspace_label="api",
        cleanup_delay=0.0,
    )


@pytest.fixture
def make_engine(fake_vcs, mock_sleep, clones_dir, sync_config):
    """Factory creating engines wired to the fake version-control client."""
    engines: list[SyncEngine] = []

    def _make(config: Optional[RulesSyncConfig] = None) -> SyncEngine:
        config = config or sync_config
        engine = SyncEngine(
            config,
            vcs=fake_vcs,
            executor=RetryingExecutor(config.retry, sleep=mock_sleep),
            temp_dir=clones_dir,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.wait_for_cleanup(timeout=5)


@pytest.fixture
def engine(make_engine):
    return make_engine()
