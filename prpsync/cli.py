"""
prpsync CLI - Typer Commands

Operator front end for the PRP tools. The acting user comes from --user or
PRPSYNC_USER, standing in for the identity provider a hosted deployment
would supply.
"""

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from prpsync import __version__
from prpsync.auth import AllowListAuthorizer
from prpsync.config import PRPConfig, load_config
from prpsync.exceptions import ConfigError, PRPError, SyncStateLostError
from prpsync.extraction.client import ExtractionClient
from prpsync.logging import register_secret
from prpsync.notion.client import NotionClient
from prpsync.persistence.models import TaskStatus
from prpsync.persistence.repository import PRPRepository
from prpsync.retry import RetryPolicy
from prpsync.tools import PRPTools
from prpsync.youtube.client import YouTubeClient

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="prpsync",
    help="Extract PRPs from YouTube videos, track their tasks and sync them to Notion",
    add_completion=False,
)

UserOption = typer.Option(
    None, "--user", "-u", help="Acting username (default: $PRPSYNC_USER)"
)


def _resolve_user(user: str | None) -> str:
    return user or os.environ.get("PRPSYNC_USER", "")


def _build_tools(config: PRPConfig, user: str) -> PRPTools:
    """Wire clients from configuration; unconfigured services stay None."""
    for secret in (config.youtube_api_key, config.openrouter_api_key, config.notion_token):
        register_secret(secret)

    retry = RetryPolicy(max_attempts=config.max_retries, base_delay=config.retry_base_delay)
    return PRPTools(
        repository=PRPRepository(config.db_path),
        youtube=YouTubeClient(config.youtube_api_key, retry=retry) if config.youtube_api_key else None,
        extractor=(
            ExtractionClient(config.openrouter_api_key, model=config.model, retry=retry)
            if config.openrouter_api_key
            else None
        ),
        notion=NotionClient(config.notion_token, retry=retry) if config.notion_token else None,
        authorizer=AllowListAuthorizer(config.allowed_users),
        current_user=user,
    )


def _run(user: str | None, call: Callable[[PRPTools], Awaitable[Any]]) -> Any:
    """Load config, run one tool call, close clients."""
    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(1)

    tools = _build_tools(config, _resolve_user(user))

    async def runner() -> Any:
        try:
            return await call(tools)
        finally:
            await tools.close()

    try:
        return asyncio.run(runner())
    except SyncStateLostError as e:
        console.print(f"[bold red]Sync state could not be recorded:[/bold red] {e}")
        raise typer.Exit(2)


def _unwrap(result: dict[str, Any]) -> dict[str, Any]:
    """Print an error envelope and exit, or return the success data."""
    if "error" in result:
        console.print(f"[bold red]Error:[/bold red] {result['error']}")
        details = {k: v for k, v in result.get("details", {}).items() if k != "kind"}
        if details:
            console.print(f"[dim]{json.dumps(details, default=str)}[/dim]")
        raise typer.Exit(1)
    console.print(f"[green]{result['message']}[/green]")
    return result["data"]


def _task_table(tasks: list[dict[str, Any]], title: str = "Tasks") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("ID", style="dim")
    for task in tasks:
        table.add_row(str(task["order"]), task["title"], task["type"], task["status"], task["id"])
    return table


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"prpsync {__version__}")


@app.command()
def parse(
    url: str = typer.Argument(..., help="YouTube video URL"),
    database: str | None = typer.Option(None, "--database", "-d", help="Notion database ID"),
    sync: bool = typer.Option(False, "--sync", help="Sync to Notion after parsing"),
    user: str | None = UserOption,
) -> None:
    """Parse a PRP from a YouTube video."""
    with console.status("Parsing video..."):
        result = _run(user, lambda t: t.parse_youtube_prp(url, database, sync))
    data = _unwrap(result)

    console.print(
        Panel(
            f"[bold]{data['prp_name']}[/bold]\n"
            f"Video: {data['video_title']} ({data['channel_title']})\n"
            f"Tasks: {data['task_count']}\n"
            f"Sync: {data['sync_status']}"
            + (f" ({data['sync_error']})" if data.get("sync_error") else ""),
            title=data["prp_id"],
        )
    )


@app.command("list")
def list_prps(
    created_by: str | None = typer.Option(None, "--created-by", help="Filter by creator"),
    status: str | None = typer.Option(None, "--sync-status", help="Filter by sync status"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    user: str | None = UserOption,
) -> None:
    """List parsed PRPs."""
    data = _unwrap(_run(user, lambda t: t.list_parsed_prps(created_by, status, limit, offset)))

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Video")
    table.add_column("Tasks", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Notion")
    for prp in data["prps"]:
        table.add_row(
            prp["id"],
            prp["name"] or "",
            prp["video_title"],
            str(prp["tasks"]["total"]),
            str(prp["tasks"]["completed"]),
            prp["notion"]["status"],
        )
    console.print(table)
    if data["hasMore"]:
        console.print(f"[dim]More results: --offset {data['offset'] + data['limit']}[/dim]")


@app.command()
def show(
    prp_id: str = typer.Argument(..., help="PRP ID"),
    summary: bool = typer.Option(False, "--summary", help="Add a short AI summary"),
    user: str | None = UserOption,
) -> None:
    """Show a PRP with its tasks."""
    data = _unwrap(_run(user, lambda t: t.get_prp_details(prp_id)))
    prp = data["prp"]

    body = [
        f"[bold]{prp.get('name', '')}[/bold]",
        prp.get("description", ""),
        "",
        f"[bold]Goal:[/bold] {prp.get('goal', '')}",
        f"[bold]What:[/bold] {prp.get('what', '')}",
        f"[bold]Video:[/bold] {data['video']['title']} ({data['video']['duration'] or '?'})",
        f"[bold]Notion:[/bold] {data['metadata']['notion_sync_status']}",
    ]
    console.print(Panel("\n".join(body), title=data["id"]))
    console.print(_task_table(data.get("tasks", [])))

    if summary:

        async def summarize(tools: PRPTools) -> str:
            stored = tools.repository.get_prp(prp_id)
            if stored is None:
                raise typer.Exit(1)
            return await tools.extractor.summarize(stored.prp_content(), len(data.get("tasks", [])))

        try:
            text = _run(user, summarize)
        except PRPError as e:
            console.print(f"[yellow]Summary unavailable:[/yellow] {e.message}")
            return
        console.print(Panel(text, title="Summary"))


@app.command("extract-tasks")
def extract_tasks(
    prp_id: str = typer.Argument(..., help="PRP ID"),
    max_tasks: int = typer.Option(20, "--max", "-m", help="Maximum new tasks"),
    user: str | None = UserOption,
) -> None:
    """Extract additional tasks for a PRP (privileged)."""
    with console.status("Extracting tasks..."):
        result = _run(user, lambda t: t.extract_tasks(prp_id, max_tasks))
    data = _unwrap(result)
    console.print(_task_table(data["tasks"], title=f"New tasks ({data['total_task_count']} total)"))


@app.command("task-status")
def task_status(
    task_id: str = typer.Argument(..., help="Task ID"),
    status: TaskStatus = typer.Argument(..., help="New status"),
    user: str | None = UserOption,
) -> None:
    """Update a task's status (privileged)."""
    data = _unwrap(_run(user, lambda t: t.update_task_status(task_id, status.value)))
    console.print(f"  {data['old_status']} -> {data['new_status']} ({data['prp_name']})")


@app.command()
def sync(
    prp_id: str = typer.Argument(..., help="PRP ID"),
    database: str = typer.Option(..., "--database", "-d", help="Notion database ID"),
    update: bool = typer.Option(False, "--update", help="Update the existing page"),
    user: str | None = UserOption,
) -> None:
    """Sync a PRP to Notion (privileged)."""
    with console.status("Syncing to Notion..."):
        result = _run(user, lambda t: t.sync_to_notion(prp_id, database, update))
    data = _unwrap(result)
    console.print(f"  {data['notion_page_url']}")


@app.command("sync-status")
def sync_status(
    status: str | None = typer.Option(None, "--status", help="Filter by sync status"),
    user: str | None = UserOption,
) -> None:
    """Show Notion sync status of recent PRPs."""
    data = _unwrap(_run(user, lambda t: t.check_notion_sync_status(sync_status=status)))
    summary = data["summary"]
    console.print(
        f"  total {summary['total']}  synced {summary['synced']}  "
        f"failed {summary['failed']}  not synced {summary['not_synced']}"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("PRP")
    table.add_column("Status")
    table.add_column("Error")
    for row in data["results"]:
        table.add_row(
            row["id"], row["prp_name"] or "", row["notion_sync_status"], row["notion_sync_error"] or ""
        )
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
