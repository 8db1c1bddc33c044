"""CLI interface for rulesync."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import click

from .config import load_config
from .exceptions import RulesSyncError
from .output import OutputFormatter
from .sync import FirstSyncAction, FirstSyncStrategy, SyncEngine, SyncStats

logger = logging.getLogger(__name__)


def _build_engine(ctx: Any) -> tuple[SyncEngine, Path]:
    """Load configuration and create an engine for the selected workspace."""
    out: OutputFormatter = ctx.obj["out"]
    workspace = Path(ctx.obj["workspace"])
    config = load_config(ctx.obj["config_path"], workspace_root=workspace)
    return SyncEngine(config, output=out), workspace


def _report_error(out: OutputFormatter, error: RulesSyncError) -> None:
    out.error(f"{error.label}: {error}")
    out.warning(error.remediation)
    errors = getattr(error, "errors", None)
    if errors:
        for problem in errors:
            out.warning(f"  - {problem}")


def _report_stats(out: OutputFormatter, title: str, stats: SyncStats) -> None:
    if out.json_output:
        out.output_json(stats.to_dict())
        return
    out.print_stats(title, stats.to_dict())
    out.success(f"{title}: {stats.describe()}")


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Configuration file (defaults to .rulesync.json or the user config)",
)
@click.option(
    "--workspace",
    "-w",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Workspace directory containing the rule tree",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    config_path: Optional[str],
    workspace: str,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """rulesync - Keep project rule documents in sync with a shared repository."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["workspace"] = workspace
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("rulesync").setLevel(logging.DEBUG)
        # GitPython is chatty at debug level
        logging.getLogger("git").setLevel(logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.pass_context
def sync(ctx: Any) -> None:
    """Publish local rule changes to the shared repository.

    Files that exist remotely keep their frontmatter; only the body is
    replaced. Rules matching an exclusion pattern are never uploaded.
    """
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine, workspace = _build_engine(ctx)
        out.info("Syncing rules...")
        stats = engine.sync(workspace)
        _report_stats(out, "Rules synced", stats)
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.wait_for_cleanup()


@main.command()
@click.pass_context
def pull(ctx: Any) -> None:
    """Overwrite local syncable rules with the shared repository's copies."""
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine, workspace = _build_engine(ctx)
        out.info("Pulling rules...")
        stats = engine.pull(workspace)
        _report_stats(out, "Rules pulled", stats)
    except KeyboardInterrupt:
        out.warning("\nPull cancelled by user")
        ctx.exit(130)
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.wait_for_cleanup()


@main.command()
@click.pass_context
def push(ctx: Any) -> None:
    """Push local rules, retrying clone, pull and push with backoff."""
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine, workspace = _build_engine(ctx)
        out.info("Pushing rules...")
        stats = engine.push(workspace)
        _report_stats(out, "Rules pushed", stats)
    except KeyboardInterrupt:
        out.warning("\nPush cancelled by user")
        ctx.exit(130)
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.wait_for_cleanup()


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show local, global and syncable rules of the workspace."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        engine, workspace = _build_engine(ctx)
        if out.json_output:
            structure = engine.get_rules_structure(workspace)
            out.output_json(
                {
                    "localRules": [rule.name for rule in structure.local_rules],
                    "globalRules": [rule.name for rule in structure.global_rules],
                    "syncable": {
                        rule.name: list(rule.files)
                        for rule in structure.global_rules
                    },
                }
            )
            return
        out.print(engine.status_report(workspace))
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)


@main.command("check-first-sync")
@click.pass_context
def check_first_sync(ctx: Any) -> None:
    """Inspect both sides before the first sync without changing anything."""
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine, workspace = _build_engine(ctx)
        info = engine.assess_first_sync(workspace)
        if out.json_output:
            out.output_json(info.to_dict())
            return
        out.print(f"First sync:     {'yes' if info.is_first_sync else 'no'}")
        out.print(f"Local rules:    {info.local_rules_count} file(s)")
        out.print(f"Remote rules:   {info.remote_rules_count} file(s)")
        if info.conflicts:
            out.print(f"Conflicts:      {', '.join(info.conflicts)}")
        recommended = info.recommended_strategy
        if recommended is not None:
            out.info(f"Recommended strategy: {recommended.value}")
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.wait_for_cleanup()


@main.command("first-sync")
@click.option(
    "--strategy",
    "-s",
    type=click.Choice([s.value for s in FirstSyncStrategy]),
    default=FirstSyncStrategy.AUTO.value,
    show_default=True,
    help="How to reconcile local and remote rules",
)
@click.pass_context
def first_sync(ctx: Any, strategy: str) -> None:
    """Run the first sync of a workspace safely.

    With ``auto``, rules are pushed when only the workspace has some and
    pulled when only the remote has some. When both sides have rules, the
    command stops and asks for an explicit strategy.
    """
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine, workspace = _build_engine(ctx)
        resolution = engine.safe_first_sync(workspace, strategy)
        if out.json_output:
            out.output_json(
                {
                    "action": resolution.action.value,
                    "info": resolution.info.to_dict(),
                    "stats": resolution.stats.to_dict(),
                }
            )
        elif resolution.action == FirstSyncAction.CREATED_STRUCTURE:
            out.success("Created the rules directory; both sides were empty")
        elif resolution.action == FirstSyncAction.NEEDS_DECISION:
            out.warning("Both the workspace and the remote already have rules.")
            if resolution.conflicts:
                out.warning(f"Same-named files: {', '.join(resolution.conflicts)}")
            out.print(
                "Re-run with --strategy local-first to keep the workspace copies "
                "or --strategy remote-first to keep the remote ones."
            )
        else:
            title = f"First sync ({resolution.action.value})"
            _report_stats(out, title, resolution.stats)

        if resolution.action == FirstSyncAction.NEEDS_DECISION:
            ctx.exit(2)
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.wait_for_cleanup()


@main.command()
@click.option(
    "--interval",
    "-i",
    type=click.IntRange(min=1),
    default=None,
    help="Minutes between syncs (defaults to auto_sync_interval)",
)
@click.option("--once", is_flag=True, help="Run a single sync and exit")
@click.pass_context
def watch(ctx: Any, interval: Optional[int], once: bool) -> None:
    """Sync periodically until interrupted.

    Calls never overlap: the next sync starts only after the previous one
    has finished. Failures are reported and the loop keeps going.
    """
    out: OutputFormatter = ctx.obj["out"]
    try:
        engine, workspace = _build_engine(ctx)
    except RulesSyncError as e:
        _report_error(out, e)
        ctx.exit(1)
        return

    minutes = interval or engine.config.auto_sync_interval
    out.info(f"Auto-sync every {minutes} minute(s), press Ctrl+C to stop")
    try:
        while True:
            try:
                stats = engine.sync(workspace)
                if stats.total:
                    _report_stats(out, "Rules synced", stats)
                else:
                    logger.info("Auto-sync: no changes")
            except RulesSyncError as e:
                _report_error(out, e)
                if once:
                    ctx.exit(1)
            if once:
                break
            time.sleep(minutes * 60)
    except KeyboardInterrupt:
        out.warning("\nAuto-sync stopped by user")
    finally:
        engine.wait_for_cleanup()


if __name__ == "__main__":
    main()
