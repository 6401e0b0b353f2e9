"""Admin CLI for chatmem.

Inspects strategy decisions and talks to the durable store directly.
Durable commands need CHATMEM_DATABASE_URL and OPENROUTER_API_KEY.
"""

import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from chatmem.config import ChatMemConfig
from chatmem.errors import ChatMemError, CollaboratorError, MissingIdentityError
from chatmem.lib.async_utils import run_async

console = Console()


def setup_logging(verbose: bool) -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def handle_error(e: Exception) -> None:
    """Handle and display errors nicely."""
    if isinstance(e, CollaboratorError):
        console.print(f"[red]{e.collaborator.replace('_', ' ').title()} Error:[/red] {e}")
        console.print("[dim]Check CHATMEM_DATABASE_URL and OPENROUTER_API_KEY.[/dim]")
    elif isinstance(e, MissingIdentityError):
        console.print(f"[red]Invalid Arguments:[/red] {e}")
    elif isinstance(e, (ChatMemError, ValueError)):
        console.print(f"[red]Error:[/red] {e}")
    else:
        console.print(f"[red]Unexpected Error:[/red] {e}")
    sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """chatmem - hybrid memory for chat assistants.

    Configuration is read from CHATMEM_* environment variables (or .env).
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = ChatMemConfig()
    setup_logging(verbose)


def _open_durable(config: ChatMemConfig):
    from chatmem.embedding import AsyncEmbeddingClient
    from chatmem.vectorstore import PgVectorStore

    store = PgVectorStore(
        database_url=config.database_url,
        table=config.vector_table,
        embedding_dim=config.embedding_dimension,
    )
    embedder = AsyncEmbeddingClient(model=config.embedding_model)
    return store, embedder


# =============================================================================
# Strategy Command
# =============================================================================


@main.command()
@click.argument("query")
@click.option("--turn", "-t", "turn_index", default=0, help="Position of the message in its chat")
@click.pass_context
def strategy(ctx: click.Context, query: str, turn_index: int) -> None:
    """Show which retrieval strategy a message would get.

    Example:
        chatmem strategy "remember what we discussed about pricing?" --turn 5
    """
    from chatmem.memory.strategy import StrategySelector

    selected, rule = StrategySelector(ctx.obj["config"]).classify(query, turn_index)

    table = Table(title="Strategy")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Query", query)
    table.add_row("Turn", str(turn_index))
    table.add_row("Strategy", selected.value)
    table.add_row("Rule", rule)
    console.print(table)


# =============================================================================
# Durable Store Commands
# =============================================================================


@main.command()
@click.argument("user_id")
@click.argument("query")
@click.option("--chat", "-c", "chat_id", default=None, help="Restrict to one chat")
@click.option("--limit", "-l", default=5, help="Maximum results")
@click.option("--threshold", default=None, type=float, help="Minimum similarity score")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def recall(
    ctx: click.Context,
    user_id: str,
    query: str,
    chat_id: str | None,
    limit: int,
    threshold: float | None,
    as_json: bool,
) -> None:
    """Run a similarity query against a user's durable memories."""
    config: ChatMemConfig = ctx.obj["config"]
    threshold = config.relevance_threshold if threshold is None else threshold

    async def _recall():
        store, embedder = _open_durable(config)
        try:
            vector = await embedder.embed(query)
            metadata_filter = {"user_id": user_id, "chat_id": chat_id}
            return await store.query(vector, metadata_filter, limit, threshold)
        finally:
            await embedder.close()
            await store.close()

    try:
        with console.status("Searching..."):
            matches = run_async(_recall())
    except (ChatMemError, ValueError) as e:
        handle_error(e)
        return

    if as_json:
        console.print(json.dumps([m.model_dump() for m in matches], indent=2, default=str))
        return
    if not matches:
        console.print("[yellow]No memories found[/yellow]")
        return

    table = Table(title=f"Memories for {user_id}")
    table.add_column("Score", style="green", width=6)
    table.add_column("Chat", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Content")
    for match in matches:
        content = match.content if ctx.obj["verbose"] else match.content[:120]
        table.add_row(f"{match.score:.2f}", match.chat_id or "?", str(match.metadata.get("role", "?")), content)
    console.print(table)


@main.command()
@click.argument("user_id")
@click.option("--chat", "-c", "chat_id", default=None, help="Erase only this chat")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def erase(ctx: click.Context, user_id: str, chat_id: str | None, yes: bool) -> None:
    """Delete a user's durable memories (or one chat's)."""
    target = f"chat {chat_id} of user {user_id}" if chat_id else f"ALL memories of user {user_id}"
    if not yes and not click.confirm(f"Delete {target}?"):
        console.print("[yellow]Aborted[/yellow]")
        return

    config: ChatMemConfig = ctx.obj["config"]

    async def _erase():
        from chatmem.vectorstore import PgVectorStore

        store = PgVectorStore(database_url=config.database_url, table=config.vector_table)
        try:
            metadata_filter = {"user_id": user_id}
            if chat_id:
                metadata_filter["chat_id"] = chat_id
            return await store.delete(metadata_filter)
        finally:
            await store.close()

    try:
        deleted = run_async(_erase())
    except (ChatMemError, ValueError) as e:
        handle_error(e)
        return
    console.print(f"[green]Deleted {deleted} records[/green]")


# =============================================================================
# Config Command
# =============================================================================


@main.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the effective configuration."""
    config: ChatMemConfig = ctx.obj["config"]

    table = Table(title="chatmem Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in config.model_dump().items():
        if name == "database_url":
            value = "(set)" if value else "(not set)"
        table.add_row(name, str(value))
    console.print(table)


if __name__ == "__main__":
    main()
