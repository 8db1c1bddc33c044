"""Tests for the sync engine."""

from unittest.mock import Mock

import pytest
from conftest import REMOTE_URL, RULES_PATH, read_file, write_file
from git import GitCommandError

from rulesync.config import RulesSyncConfig
from rulesync.exceptions import (
    ConfigurationError,
    DivergedHistoryError,
    PermanentOperationError,
    TransientNetworkError,
)
from rulesync.output import OutputFormatter
from rulesync.sync import SyncEngine, SyncPhase, SyncStats


class TestSyncEngineSetup:
    """Test SyncEngine construction and helpers."""

    def test_create_sync_engine(self, fake_vcs, sync_config):
        """Test creating a sync engine."""
        output = Mock(spec=OutputFormatter)
        engine = SyncEngine(sync_config, vcs=fake_vcs, output=output)
        assert engine.config == sync_config
        assert engine.output == output
        assert engine.operations.vcs is fake_vcs
        assert engine.last_phases == [SyncPhase.IDLE]

    def test_local_rules_dir(self, engine, workspace):
        """Test the rule root is resolved below the workspace."""
        assert engine.local_rules_dir(workspace) == workspace / RULES_PATH

    def test_get_syncable_rules_skips_excluded(self, engine, workspace):
        """Test only global rules are reported as syncable."""
        rules = workspace / RULES_PATH
        write_file(rules / "python" / "style.md", "py")
        write_file(rules / "my-project" / "notes.md", "local")
        write_file(rules / "my-project.mdc", "local too")

        names = [rule.name for rule in engine.get_syncable_rules(workspace)]
        assert names == ["python"]

    def test_status_report(self, engine, workspace):
        """Test the status report lists local, global and syncable rules."""
        rules = workspace / RULES_PATH
        write_file(rules / "python" / "a.md", "a")
        write_file(rules / "python" / "b.md", "b")
        write_file(rules / "my-project" / "notes.md", "local")

        report = engine.status_report(workspace)

        assert "Local rules (1):" in report
        assert "  - my-project (excluded)" in report
        assert "Global rules (1):" in report
        assert "  - python (2 file(s))" in report


class TestSyncUpload:
    """Test publishing local changes with sync()."""

    def test_sync_uploads_new_files(self, engine, workspace, remote, fake_vcs):
        """Test new local files are copied, committed and pushed."""
        write_file(workspace / RULES_PATH / "python" / "style.md", "use black")

        stats = engine.sync(workspace)

        assert stats == SyncStats(added=1, modified=0, deleted=0)
        assert read_file(remote / RULES_PATH / "python" / "style.md") == "use black"
        assert fake_vcs.calls == ["clone", "add", "commit", "pull", "push"]
        assert fake_vcs.commits[0].startswith("Update rules from api at ")

    def test_sync_never_uploads_excluded_rules(self, engine, workspace, remote):
        """Test excluded folders and root files stay local."""
        rules = workspace / RULES_PATH
        write_file(rules / "shared.md", "shared")
        write_file(rules / "my-project" / "notes.md", "secret")
        write_file(rules / "my-project.mdc", "secret")

        stats = engine.sync(workspace)

        assert stats.added == 1
        remote_rules = remote / RULES_PATH
        assert (remote_rules / "shared.md").exists()
        assert not (remote_rules / "my-project").exists()
        assert not (remote_rules / "my-project.mdc").exists()

    def test_sync_propagates_deletions(self, engine, workspace, remote):
        """Test files removed locally are removed from the remote."""
        write_file(remote / RULES_PATH / "keep.md", "same")
        write_file(remote / RULES_PATH / "old" / "gone.md", "bye")
        write_file(workspace / RULES_PATH / "keep.md", "same")

        stats = engine.sync(workspace)

        assert stats == SyncStats(added=0, modified=0, deleted=1)
        assert (remote / RULES_PATH / "keep.md").exists()
        assert not (remote / RULES_PATH / "old" / "gone.md").exists()
        # Emptied folders are pruned
        assert not (remote / RULES_PATH / "old").exists()

    def test_sync_skips_deletions_when_local_tree_missing(
        self, engine, workspace, remote, fake_vcs
    ):
        """Test a missing local rule tree never wipes the remote."""
        write_file(remote / RULES_PATH / "a.md", "a")
        write_file(remote / RULES_PATH / "b" / "c.md", "c")

        stats = engine.sync(workspace)

        assert stats.deleted == 0
        assert stats.total == 0
        assert (remote / RULES_PATH / "a.md").exists()
        assert (remote / RULES_PATH / "b" / "c.md").exists()
        assert "commit" not in fake_vcs.calls
        assert "push" not in fake_vcs.calls

    def test_sync_skips_deletions_when_only_excluded_rules_exist(
        self, engine, workspace, remote
    ):
        """Test deletion protection looks at syncable files only."""
        write_file(remote / RULES_PATH / "shared.md", "shared")
        write_file(workspace / RULES_PATH / "my-project" / "notes.md", "local")

        stats = engine.sync(workspace)

        assert stats.deleted == 0
        assert (remote / RULES_PATH / "shared.md").exists()

    def test_sync_preserves_remote_frontmatter(self, engine, workspace, remote):
        """Test the remote metadata block survives a body update."""
        write_file(
            remote / RULES_PATH / "style.mdc",
            "---\nalwaysApply: true\n---\nold body\n",
        )
        write_file(
            workspace / RULES_PATH / "style.mdc",
            "---\nalwaysApply: false\n---\nnew body\n",
        )

        stats = engine.sync(workspace)

        assert stats.modified == 1
        assert (
            read_file(remote / RULES_PATH / "style.mdc")
            == "---\nalwaysApply: true\n---\nnew body\n"
        )

    def test_sync_is_idempotent(self, engine, workspace, fake_vcs):
        """Test a second sync without local edits changes nothing."""
        write_file(workspace / RULES_PATH / "python" / "style.md", "use black")
        write_file(workspace / RULES_PATH / "general.mdc", "be nice")

        first = engine.sync(workspace)
        second = engine.sync(workspace)

        assert first.added == 2
        assert second == SyncStats()
        assert second.describe() == "No changes"
        assert len(fake_vcs.commits) == 1

    def test_sync_without_changes_does_not_push(
        self, engine, workspace, remote, fake_vcs
    ):
        """Test nothing is committed or pushed when both sides match."""
        write_file(remote / RULES_PATH / "a.md", "same")
        write_file(workspace / RULES_PATH / "a.md", "same")

        stats = engine.sync(workspace)

        assert stats.total == 0
        assert fake_vcs.calls == ["clone", "add"]

    def test_sync_uses_workspace_folder_as_default_label(
        self, make_engine, sync_config, workspace, fake_vcs
    ):
        """Test the commit message falls back to the workspace folder name."""
        config = RulesSyncConfig(
            remote_url=sync_config.remote_url,
            retry=sync_config.retry,
            cleanup_delay=0.0,
        )
        engine = make_engine(config)
        write_file(workspace / RULES_PATH / "a.md", "a")

        engine.sync(workspace)

        assert fake_vcs.commits[0].startswith("Update rules from workspace at ")

    def test_sync_writes_gitignore_section(self, engine, workspace):
        """Test the workspace .gitignore keeps shared rules out of the project."""
        engine.sync(workspace)

        content = (workspace / ".gitignore").read_text(encoding="utf-8")
        assert ".cursor/rules/*" in content
        assert "!.cursor/rules/my-project/" in content

    def test_sync_removes_temporary_clone(self, engine, workspace, clones_dir):
        """Test the temporary clone is removed after the call."""
        write_file(workspace / RULES_PATH / "a.md", "a")

        engine.sync(workspace)
        engine.wait_for_cleanup(timeout=5)

        assert list(clones_dir.iterdir()) == []

    def test_sync_records_phases(self, engine, workspace):
        """Test the traversed phases are recorded in order."""
        write_file(workspace / RULES_PATH / "a.md", "a")

        engine.sync(workspace)

        assert engine.last_phases == [
            SyncPhase.IDLE,
            SyncPhase.VALIDATING_CONFIG,
            SyncPhase.CLONING_REMOTE,
            SyncPhase.COMPUTING_CHANGE_SET,
            SyncPhase.APPLYING_CHANGES,
            SyncPhase.COMMITTING,
            SyncPhase.PULLING,
            SyncPhase.PUSHING,
            SyncPhase.CLEANING_UP,
            SyncPhase.DONE,
        ]


class TestSyncFailures:
    """Test error handling of sync() and push()."""

    def test_invalid_config_fails_before_clone(self, make_engine, workspace, fake_vcs):
        """Test configuration errors are raised before any remote call."""
        engine = make_engine(RulesSyncConfig(remote_url=""))

        with pytest.raises(ConfigurationError) as exc_info:
            engine.sync(workspace)

        assert "Remote repository URL is not set" in exc_info.value.errors
        assert fake_vcs.calls == []
        assert engine.last_phases == [
            SyncPhase.IDLE,
            SyncPhase.VALIDATING_CONFIG,
            SyncPhase.ERRORED,
        ]

    def test_clone_is_retried(self, engine, workspace, fake_vcs, mock_sleep):
        """Test transient clone failures are retried."""
        fake_vcs.clone_errors = [Exception("Could not resolve host: example.com")]
        write_file(workspace / RULES_PATH / "a.md", "a")

        stats = engine.sync(workspace)

        assert stats.added == 1
        assert fake_vcs.calls.count("clone") == 2
        assert mock_sleep.call_count == 1

    def test_failed_pull_before_push_is_ignored(
        self, engine, workspace, remote, fake_vcs
    ):
        """Test a failing pull does not stop the push."""
        fake_vcs.pull_errors = [Exception("fatal: unable to access remote")]
        write_file(workspace / RULES_PATH / "a.md", "a")

        stats = engine.sync(workspace)

        assert stats.added == 1
        assert "push" in fake_vcs.calls
        assert (remote / RULES_PATH / "a.md").exists()

    def test_sync_push_rejection_is_not_retried(self, engine, workspace, fake_vcs):
        """Test sync reports a diverged history after a single push."""
        fake_vcs.push_errors = [
            Exception("! [rejected] main -> main (fetch first)"),
        ]
        write_file(workspace / RULES_PATH / "a.md", "a")

        with pytest.raises(DivergedHistoryError):
            engine.sync(workspace)

        assert fake_vcs.calls.count("push") == 1
        assert engine.last_phases[-1] == SyncPhase.ERRORED

    def test_push_retries_rejection_then_reports_divergence(
        self, engine, workspace, fake_vcs, mock_sleep
    ):
        """Test push retries a rejected push up to max_attempts."""
        rejected = "Updates were rejected because the remote contains work"
        fake_vcs.push_errors = [Exception(rejected) for _ in range(3)]
        write_file(workspace / RULES_PATH / "a.md", "a")

        with pytest.raises(DivergedHistoryError):
            engine.push(workspace)

        assert fake_vcs.calls.count("push") == 3

    def test_push_unknown_failure_is_permanent(self, engine, workspace, fake_vcs):
        """Test non-divergence push failures become permanent errors."""
        fake_vcs.push_errors = [Exception("unexpected failure") for _ in range(3)]
        write_file(workspace / RULES_PATH / "a.md", "a")

        with pytest.raises(PermanentOperationError):
            engine.push(workspace)

        # Unknown errors are not retried
        assert fake_vcs.calls.count("push") == 1

    def test_push_succeeds_after_transient_failure(
        self, engine, workspace, remote, fake_vcs
    ):
        """Test push recovers from a dropped connection."""
        fake_vcs.push_errors = [Exception("Connection reset by peer")]
        write_file(workspace / RULES_PATH / "a.md", "a")

        stats = engine.push(workspace)

        assert stats.added == 1
        assert fake_vcs.calls.count("push") == 2
        assert (remote / RULES_PATH / "a.md").exists()

    def test_failed_call_still_cleans_up(self, engine, workspace, fake_vcs, clones_dir):
        """Test the temporary clone is removed after a failure."""
        fake_vcs.push_errors = [Exception("[rejected] non-fast-forward")]
        write_file(workspace / RULES_PATH / "a.md", "a")

        with pytest.raises(DivergedHistoryError):
            engine.sync(workspace)
        engine.wait_for_cleanup(timeout=5)

        assert SyncPhase.CLEANING_UP in engine.last_phases
        assert list(clones_dir.iterdir()) == []

    def test_clone_auth_failure_is_reported(self, engine, workspace, fake_vcs):
        """Test a git clone refusing credentials surfaces as a typed error."""
        fake_vcs.clone_errors = [
            GitCommandError(
                ["git", "clone"], 128, stderr="fatal: Authentication failed for 'x'"
            )
            for _ in range(3)
        ]
        write_file(workspace / RULES_PATH / "a.md", "a")

        with pytest.raises(PermanentOperationError, match="Clone failed"):
            engine.sync(workspace)

        assert fake_vcs.calls.count("clone") == 3
        assert engine.last_phases[-1] == SyncPhase.ERRORED

    def test_clone_network_failure_is_transient(self, engine, workspace, fake_vcs):
        """Test an unreachable remote raises TransientNetworkError."""
        fake_vcs.clone_errors = [
            GitCommandError(
                ["git", "clone"], 128, stderr="fatal: Could not resolve host: x"
            )
            for _ in range(3)
        ]

        with pytest.raises(TransientNetworkError):
            engine.push(workspace)

        assert "push" not in fake_vcs.calls

    def test_missing_repository_is_permanent(self, engine, workspace, fake_vcs):
        """Test git's own repository-not-found message is recognised."""
        fake_vcs.clone_errors = [
            GitCommandError(
                ["git", "clone"],
                128,
                stderr="fatal: repository 'https://x/r.git/' not found",
            )
            for _ in range(3)
        ]

        with pytest.raises(PermanentOperationError):
            engine.sync(workspace)

    def test_retried_push_pulls_before_each_attempt(
        self, engine, workspace, remote, fake_vcs
    ):
        """Test each push retry first rebases onto the moved remote."""
        fake_vcs.push_errors = [Exception("! [rejected] main -> main (fetch first)")]
        write_file(workspace / RULES_PATH / "a.md", "a")

        engine.push(workspace)

        assert fake_vcs.calls.count("push") == 2
        assert fake_vcs.calls.count("pull") == 2
        assert fake_vcs.calls[-4:] == ["pull", "push", "pull", "push"]
        assert (remote / RULES_PATH / "a.md").exists()

    def test_protected_branch_rejection_is_permanent(
        self, engine, workspace, fake_vcs
    ):
        """Test a server-side hook refusal is not reported as divergence."""
        fake_vcs.push_errors = [
            Exception(
                "! [remote rejected] main -> main (protected branch hook declined)"
            )
        ]
        write_file(workspace / RULES_PATH / "a.md", "a")

        with pytest.raises(PermanentOperationError):
            engine.sync(workspace)

    def test_non_utf8_document_is_copied(self, engine, workspace, remote):
        """Test a document that is not UTF-8 is published byte for byte."""
        write_file(remote / RULES_PATH / "a.md", "---\nB: 2\n---\nold\n")
        local = workspace / RULES_PATH / "a.md"
        local.parent.mkdir(parents=True)
        local.write_bytes(b"---\nA: 1\n---\ncaf\xe9\n")

        stats = engine.sync(workspace)

        assert stats.modified == 1
        assert (remote / RULES_PATH / "a.md").read_bytes() == local.read_bytes()


class TestPull:
    """Test pull()."""

    def test_pull_overwrites_local_files(self, engine, workspace, remote):
        """Test pulled files replace local content byte for byte."""
        write_file(
            remote / RULES_PATH / "style.mdc",
            "---\nalwaysApply: true\n---\nremote body\n",
        )
        write_file(
            workspace / RULES_PATH / "style.mdc",
            "---\nalwaysApply: false\n---\nlocal body\n",
        )
        write_file(remote / RULES_PATH / "python" / "new.md", "new")

        stats = engine.pull(workspace)

        assert stats == SyncStats(added=1, modified=1, deleted=0)
        assert (
            read_file(workspace / RULES_PATH / "style.mdc")
            == "---\nalwaysApply: true\n---\nremote body\n"
        )
        assert read_file(workspace / RULES_PATH / "python" / "new.md") == "new"

    def test_pull_keeps_local_only_files(self, engine, workspace, remote):
        """Test local files missing remotely and excluded rules are untouched."""
        write_file(remote / RULES_PATH / "shared.md", "shared")
        write_file(remote / RULES_PATH / "my-project" / "notes.md", "remote copy")
        write_file(workspace / RULES_PATH / "mine.md", "mine")
        write_file(workspace / RULES_PATH / "my-project" / "notes.md", "local copy")

        engine.pull(workspace)

        assert read_file(workspace / RULES_PATH / "mine.md") == "mine"
        assert (
            read_file(workspace / RULES_PATH / "my-project" / "notes.md")
            == "local copy"
        )
        assert read_file(workspace / RULES_PATH / "shared.md") == "shared"

    def test_pull_with_empty_remote(self, engine, workspace, fake_vcs):
        """Test pulling from a remote without rules is a no-op."""
        stats = engine.pull(workspace)

        assert stats.total == 0
        assert "push" not in fake_vcs.calls

    def test_pull_rejects_invalid_config(self, make_engine, workspace, fake_vcs):
        """Test pull validates the configuration first."""
        engine = make_engine(RulesSyncConfig(remote_url=REMOTE_URL, rules_path=""))

        with pytest.raises(ConfigurationError):
            engine.pull(workspace)
        assert fake_vcs.calls == []

    def test_pull_clone_failure_is_typed(self, engine, workspace, fake_vcs):
        """Test a failing clone during pull raises a rulesync error."""
        fake_vcs.clone_errors = [
            GitCommandError(["git", "clone"], 128, stderr="fatal: Permission denied")
            for _ in range(3)
        ]

        with pytest.raises(PermanentOperationError, match="Clone failed"):
            engine.pull(workspace)

        assert engine.last_phases[-1] == SyncPhase.ERRORED
