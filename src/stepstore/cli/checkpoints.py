"""Checkpoint inspection CLI commands: threads, history, show."""

from __future__ import annotations

import json
from typing import Annotated

import typer

from stepstore.checkpointers import CheckpointTuple, make_config
from stepstore.cli._config import resolve_db
from stepstore.cli._db import open_checkpointer, run_async
from stepstore.cli._format import (
    DEFAULT_LIMIT,
    describe_value,
    format_ts,
    print_ctas,
    print_json,
    print_lines,
    print_table,
    summarize_writes,
)
from stepstore.exceptions import InvalidConfigError

# Common options
DbOption = Annotated[str | None, typer.Option("--db", help="Database path (default: [tool.stepstore] db or ./checkpoints.db)")]
JsonFlag = Annotated[bool, typer.Option("--json", help="Output as JSON")]
OutputOption = Annotated[str | None, typer.Option("--output", help="Write JSON to file")]
LimitOption = Annotated[int, typer.Option("--limit", help="Max results")]
ThreadArgument = Annotated[str, typer.Argument(help="Thread ID")]


def _locator(thread_id: str, ts: str | None, checkpoint_id: int | None = None):
    """Build a locator, turning a bad --ts into a CLI error."""
    try:
        return make_config(thread_id, ts, checkpoint_id=checkpoint_id)
    except InvalidConfigError as e:
        print(f"Error: {e}")
        raise typer.Exit(1) from e


def _step_label(item: CheckpointTuple) -> str:
    return str(item.metadata.step) if item.metadata else "—"


def _source_label(item: CheckpointTuple) -> str:
    return item.metadata.source.value if item.metadata else "—"


def register_commands(app: typer.Typer) -> None:
    """Register `threads`, `history` and `show` as top-level commands."""

    @app.command("threads")
    def threads_cmd(
        db: DbOption = None,
        limit: LimitOption = DEFAULT_LIMIT,
        as_json: JsonFlag = False,
        output: OutputOption = None,
    ):
        """List threads with checkpoints, most recently saved first."""
        db_path = resolve_db(db)
        cp = open_checkpointer(db_path)

        async def _fetch():
            async with cp:
                return await cp.list_threads(limit=limit)

        summaries = run_async(_fetch())

        if as_json:
            print_json("threads", [s.to_dict() for s in summaries], output)
            return

        if not summaries:
            print("No threads found.")
            print(f"\n  Database: {db_path}")
            return

        print(f"\nThreads ({len(summaries)})\n")
        headers = ["Thread", "Checkpoints", "Step", "Latest"]
        rows = [[s.thread_id, str(s.checkpoint_count), str(s.latest_step), format_ts(s.latest_ts)] for s in summaries]
        print_lines(print_table(headers, rows))
        print_ctas(
            [
                "stepstore history <thread>       for a thread's checkpoints",
                "stepstore show <thread> --ts <ts>  to inspect a past checkpoint",
            ]
        )

    @app.command("history")
    def history_cmd(
        thread_id: ThreadArgument,
        db: DbOption = None,
        before: Annotated[str | None, typer.Option("--before", help="Only checkpoints older than this timestamp")] = None,
        limit: LimitOption = DEFAULT_LIMIT,
        as_json: JsonFlag = False,
        output: OutputOption = None,
    ):
        """Show a thread's checkpoint history, most recent first."""
        db_path = resolve_db(db)
        config = _locator(thread_id, None)
        before_config = _locator(thread_id, before) if before else None
        cp = open_checkpointer(db_path)

        async def _fetch():
            async with cp:
                return [item async for item in cp.list_checkpoints(config, before=before_config, limit=limit)]

        history = run_async(_fetch())

        if as_json:
            print_json("history", [item.to_dict() for item in history], output)
            return

        if not history:
            print(f"No checkpoints for thread '{thread_id}'.")
            return

        print(f"\nThread: {thread_id} | {len(history)} checkpoints\n")
        headers = ["ID", "Step", "Source", "Timestamp", "Channels", "Writes"]
        rows = [
            [
                str(item.config["configurable"]["checkpoint_id"]),
                _step_label(item),
                _source_label(item),
                item.config["configurable"]["thread_ts"],
                ", ".join(item.checkpoint.channel_values) or "—",
                summarize_writes(item.metadata.writes if item.metadata else None),
            ]
            for item in history
        ]
        print_lines(print_table(headers, rows))
        print_ctas([f"stepstore show {thread_id} --id <id>  to inspect one checkpoint"])

    @app.command("show")
    def show_cmd(
        thread_id: ThreadArgument,
        ts: Annotated[str | None, typer.Option("--ts", help="Latest checkpoint at or before this timestamp")] = None,
        checkpoint_id: Annotated[int | None, typer.Option("--id", help="Exact checkpoint id (overrides --ts)")] = None,
        db: DbOption = None,
        show_values: Annotated[bool, typer.Option("--values", help="Show full channel values")] = False,
        as_json: JsonFlag = False,
        output: OutputOption = None,
    ):
        """Show one checkpoint: the latest, or the one selected by --id or --ts."""
        db_path = resolve_db(db)
        config = _locator(thread_id, ts, checkpoint_id)
        cp = open_checkpointer(db_path)

        async def _fetch():
            async with cp:
                return await cp.get_tuple(config)

        item = run_async(_fetch())
        if item is None:
            if checkpoint_id is not None:
                where = f" with id {checkpoint_id}"
            else:
                where = f" at or before {ts}" if ts else ""
            print(f"Error: No checkpoint for thread '{thread_id}'{where}.")
            raise typer.Exit(1)

        if as_json:
            print_json("show", item.to_dict(), output)
            return

        checkpoint = item.checkpoint
        located = item.config["configurable"]
        print(f"\nCheckpoint: {thread_id} #{located['checkpoint_id']} @ {located['thread_ts']}")
        print(f"  step: {_step_label(item)} | source: {_source_label(item)} | format: v{checkpoint.v}")
        if item.parent_config:
            parent = item.parent_config["configurable"]
            print(f"  parent: #{parent['checkpoint_id']} @ {parent['thread_ts']}")

        print("\n  channels:")
        if not checkpoint.channel_values:
            print("    (none)")
        for channel, value in checkpoint.channel_values.items():
            version = checkpoint.channel_versions.get(channel)
            shown = json.dumps(value, indent=None, default=str) if show_values else describe_value(value)
            print(f"    {channel} (v{version}): {shown}")

        if checkpoint.versions_seen:
            print("\n  versions seen:")
            for node_name, seen in checkpoint.versions_seen.items():
                print(f"    {node_name}: {seen}")

        if item.metadata and item.metadata.writes:
            print(f"\n  writes: {summarize_writes(item.metadata.writes)}")

        ctas = [f"stepstore history {thread_id}  for the full lineage"]
        if not show_values and checkpoint.channel_values:
            ctas.insert(0, f"stepstore show {thread_id} --values  to see channel values")
        print_ctas(ctas)
