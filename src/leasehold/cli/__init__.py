"""CLI commands for leasehold.

Provides command-line interface using Typer:
- leasehold run: Join an election and report leadership changes
- leasehold status: Show the current lease of a group

Usage:
    leasehold --help
    leasehold run --group scheduler
    leasehold status --group scheduler
"""

import typer

from leasehold.cli.run_cmd import app as run_app
from leasehold.cli.status_cmd import app as status_app

# Main CLI application
app = typer.Typer(
    name="leasehold",
    help="leasehold: lease-based leader election",
    no_args_is_help=True,
)

app.add_typer(run_app, name="run")
app.add_typer(status_app, name="status")


@app.callback()
def callback() -> None:
    """leasehold: lease-based leader election."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
