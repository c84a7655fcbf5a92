"""
CLI interface for LLM Cassette.

Runs a program with cassette settings injected and inspects a cassette
directory.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from llm_cassette.config.loader import DEFAULT_CASSETTE_DIR, ENV_DIR, ENV_MODE
from llm_cassette.core.errors import StoreIOError, UnknownMode
from llm_cassette.core.modes import CassetteMode
from llm_cassette.core.normalize import extract_assistant_text
from llm_cassette.storage.store import INDEX_FILENAME, load_record, read_index

app = typer.Typer(help="Record LLM calls once, replay them deterministically.")
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_NO_INDEX = 2


def _default_dir() -> str:
    return os.environ.get(ENV_DIR) or DEFAULT_CASSETTE_DIR


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """LLM Cassette CLI."""
    if ctx.invoked_subcommand is None:
        console.print("LLM Cassette - Use --help to see available commands")


@app.command()
def run(
    mode: str = typer.Argument(..., help="auto, record, replay or live"),
    command: Optional[List[str]] = typer.Argument(None, help="Program to run, after --"),
    directory: Optional[str] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Cassette directory passed as CASSETTE_DIR"
    )
):
    """
    Run a program with CASSETTE_MODE (and CASSETTE_DIR) set.

    Example: llm-cassette run replay --dir .cassettes -- python app.py
    """
    try:
        parsed = CassetteMode.parse(mode)
    except UnknownMode as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    if not command:
        err_console.print("Usage: llm-cassette run <auto|record|replay|live> [--dir <path>] -- <command>")
        sys.exit(EXIT_CODE_FAIL)

    env = dict(os.environ)
    env[ENV_MODE] = parsed.value
    if directory:
        env[ENV_DIR] = directory

    try:
        completed = subprocess.run(command, env=env)
    except OSError as e:
        err_console.print(f"[red]Error running {command[0]}:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(completed.returncode)


@app.command()
def inspect(
    directory: Optional[str] = typer.Option(None, "--dir", "-d", help="Cassette directory"),
    grep: Optional[str] = typer.Option(None, "--grep", "-g", help="Filter by model or hash substring"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows to show")
):
    """List recorded calls from the cassette index."""
    cassette_dir = Path(directory or _default_dir())
    index_path = cassette_dir / INDEX_FILENAME
    if not index_path.is_file():
        err_console.print(f"inspect: no index at {index_path}")
        sys.exit(EXIT_CODE_NO_INDEX)

    try:
        entries = read_index(cassette_dir)
    except StoreIOError as e:
        err_console.print(f"inspect: invalid index at {index_path}: {e.reason}")
        sys.exit(EXIT_CODE_NO_INDEX)

    console.print(f"Cassettes: {len(entries)}")
    console.print(f"Approx tokens: {sum(e.total_tokens for e in entries)}")

    rows = entries
    if grep:
        rows = [e for e in entries if grep in e.model or grep in e.hash]

    table = Table(show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("Hash")
    table.add_column("Tokens", justify="right")
    table.add_column("File")
    for entry in rows[:max(limit, 0)]:
        table.add_row(entry.model or "model", entry.hash[:8], str(entry.total_tokens), entry.file)
    console.print(table)
    sys.exit(EXIT_CODE_OK)


@app.command()
def show(
    key: str = typer.Argument(..., help="Full 64-char call key"),
    directory: Optional[str] = typer.Option(None, "--dir", "-d", help="Cassette directory")
):
    """Print a summary of one stored call record."""
    cassette_dir = directory or _default_dir()
    try:
        record = load_record(cassette_dir, key)
    except StoreIOError as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    if record is None:
        err_console.print(f"No record for {key} in {cassette_dir}")
        sys.exit(EXIT_CODE_FAIL)

    llm = record.get("llm") or {}
    usage = record.get("usage") or {}
    response = record.get("response") or {}

    console.print(f"[bold]Key:[/bold] {key}")
    console.print(f"[bold]Model:[/bold] {llm.get('model', 'unknown')}")
    console.print(f"[bold]Created:[/bold] {record.get('created_at', 'unknown')}")
    if usage:
        console.print(
            f"[bold]Usage:[/bold] prompt={usage.get('prompt_tokens', 0)} "
            f"completion={usage.get('completion_tokens', 0)} total={usage.get('total_tokens', 0)}"
        )
    console.print("[bold]Reply:[/bold]")
    console.print(extract_assistant_text(response.get("aiMessage")), markup=False)
    sys.exit(EXIT_CODE_OK)


if __name__ == "__main__":
    app()
