"""kb-sync CLI - Main entry point.

Provides the ``kbsync`` command-line interface over the daemon socket.

Usage:
    kbsync health
    kbsync bases
    kbsync search "chunk overlap" --kb kb-1 --kb kb-2 --top-k 3 --format json
"""

import json
from enum import Enum
from typing import List, Optional

import typer

from kbsync_client import DaemonClient, KBSyncError, NotReadyError
from kbsync_contracts import SearchResponse

app = typer.Typer(
    name="kbsync",
    help="Inspect and search knowledge bases synced into the kb-sync daemon.",
    add_completion=False,
)


class OutputFormat(str, Enum):
    """Output format options."""

    markdown = "markdown"
    json = "json"


_state = {"socket": None}


@app.callback()
def root(
    socket_path: Optional[str] = typer.Option(
        None, "--socket", help="Daemon socket path (default: $DAEMON_SOCKET_PATH or per-user path)"
    ),
):
    _state["socket"] = socket_path


def get_client() -> DaemonClient:
    return DaemonClient(socket_path=_state["socket"])


def _fail(error: Exception) -> None:
    if isinstance(error, NotReadyError):
        typer.echo(f"Not ready: {error}", err=True)
    else:
        typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


def format_results_markdown(response: SearchResponse, show_content: bool = True) -> str:
    lines = []
    for item in response.data:
        lines.append(f"## {item.knowledge_base_name} ({item.knowledge_base_id})")
        if not item.results:
            lines.append("_No results above threshold._")
        for i, result in enumerate(item.results, 1):
            lines.append(f"{i}. [{result.score:.3f}]")
            if show_content:
                lines.append(f"   > {result.content[:200]}")
        lines.append("")
    return "\n".join(lines)


@app.command()
def health():
    """Show daemon session and replica status."""
    try:
        status = get_client().health()
    except KBSyncError as e:
        _fail(e)

    typer.echo(f"Status:      {status.status}")
    typer.echo(f"Session:     {'active' if status.session_active else 'inactive'}")
    typer.echo(f"Bases:       {status.base_count}")
    typer.echo(f"Last synced: {status.last_synced_at or 'never'}")


@app.command()
def bases(
    format: OutputFormat = typer.Option(OutputFormat.markdown, "--format", "-f"),
):
    """List knowledge bases synced from the owner process.

    Examples:

        kbsync bases
    """
    try:
        response = get_client().list_bases()
    except KBSyncError as e:
        _fail(e)

    if format == OutputFormat.json:
        typer.echo(json.dumps(response.model_dump(mode="json", by_alias=True), indent=2))
        return

    typer.echo(f"Found {response.total} knowledge bases (synced {response.synced_at}):\n")
    for meta in response.data:
        rerank = f", rerank: {meta.rerank_model.name}" if meta.rerank_model else ""
        typer.echo(f"  {meta.id:24} {meta.name[:40]:40} ({meta.model.name}{rerank})")


@app.command()
def search(
    query_text: str = typer.Argument(..., help="The query to search for"),
    kb: List[str] = typer.Option(..., "--kb", "-k", help="Knowledge base id (repeatable)"),
    rewrite: Optional[str] = typer.Option(None, "--rewrite", help="Rewritten query to search with"),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="Score threshold (0-1)"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-n", help="Results per base"),
    format: OutputFormat = typer.Option(OutputFormat.markdown, "--format", "-f"),
    no_content: bool = typer.Option(False, "--no-content", help="Hide content snippets"),
):
    """Search one or more synced knowledge bases.

    Examples:

        kbsync search "embedding dimensions" --kb kb-1 --top-k 3
    """
    try:
        response = get_client().search(
            query_text, kb, rewrite=rewrite, threshold=threshold, top_k=top_k
        )
    except (KBSyncError, ValueError) as e:
        _fail(e)

    if format == OutputFormat.json:
        typer.echo(json.dumps(response.model_dump(mode="json"), indent=2))
    else:
        typer.echo(format_results_markdown(response, show_content=not no_content))


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
