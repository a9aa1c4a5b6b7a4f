"""stepstore CLI: inspect checkpoint lineages.

Entry point for the `stepstore` command. Requires ``pip install stepstore[cli]``.

Commands:
    threads         List threads with checkpoints
    history         Show a thread's checkpoints, most recent first
    show            Show one checkpoint (latest, or at/before --ts)
"""

from __future__ import annotations


def _require_typer():
    """Check that typer is available."""
    try:
        import typer  # noqa: F401
    except ImportError:
        import sys

        print("Error: typer is required for the CLI. Install with: pip install stepstore[cli]", file=sys.stderr)
        raise SystemExit(1) from None


def create_app():
    """Create the Typer app with all commands."""
    _require_typer()

    import typer

    from stepstore.cli.checkpoints import register_commands

    app = typer.Typer(
        name="stepstore",
        help="Inspect graph execution checkpoints.",
        no_args_is_help=True,
    )
    register_commands(app)

    return app


def main():
    """CLI entry point."""
    app = create_app()
    app()
