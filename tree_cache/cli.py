"""Command line interface for tree-cache."""

import logging
from datetime import datetime
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.tree import Tree

from .config import config_manager
from .errors import TreeCacheError
from .models.tree import Node
from .services.tree_service import TreeService
from . import __version__


def setup_logging(verbose: bool) -> None:
    """Route log records through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


def node_label(node: Node) -> str:
    return f"[bold]{escape(node.name)}[/bold] [dim]#{node.id}[/dim]"


def render_tree(node: Node) -> Tree:
    """Convert a node and its descendants into a rich Tree."""
    root = Tree(node_label(node))
    branches = {id(node): root}
    for current in node.walk():
        branch = branches.pop(id(current))
        for child in current.children:
            branches[id(child)] = branch.add(node_label(child))
    return root


def format_timestamp(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


def make_service(ctx: click.Context, **overrides) -> TreeService:
    """Create a tree service from the loaded configuration."""
    return TreeService.from_config(
        ctx.obj["config"], config_manager.base_dir, **overrides
    )


def fail(ctx: click.Context, action: str, error: Exception) -> None:
    """Report an error and exit with status 1."""
    ctx.obj["console"].print(f"[red]Error {action}: {escape(str(error))}[/red]")
    ctx.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool):
    """tree-cache - Serve subtrees of flat parent/child files from memory.

    Trees are rebuilt in the background whenever a source file changes;
    requests arriving meanwhile are answered by streaming the file directly.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = Console()
    setup_logging(verbose)

    try:
        if config:
            config_manager.config_path = config
            config_manager.reload()

        ctx.obj["config"] = config_manager.config
    except TreeCacheError as e:
        ctx.obj["console"].print(
            f"[red]Error loading configuration: {escape(str(e))}[/red]"
        )
        ctx.exit(1)


@cli.command()
@click.option("--host", type=str, default=None, help="Interface to bind")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Run the HTTP server."""
    import uvicorn

    from .services.http_api import create_app

    server = ctx.obj["config"].server
    service = make_service(ctx)
    app = create_app(service)

    ctx.obj["console"].print(
        f"[bold cyan]tree-cache[/bold cyan] serving {len(service.sources)} source(s) "
        f"on http://{host or server.host}:{port or server.port}"
    )
    uvicorn.run(app, host=host or server.host, port=port or server.port, log_config=None)


@cli.command()
@click.argument("source")
@click.argument("node_id")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def lookup(ctx: click.Context, source: str, node_id: str, output_format: str):
    """Print the subtree of SOURCE rooted at NODE_ID.

    A one-off lookup has no cache to reuse, so it streams the file directly.
    """
    console = ctx.obj["console"]
    service = make_service(ctx, max_workers=0, watch=False)

    try:
        node = service.lookup(source, node_id)
    except TreeCacheError as e:
        fail(ctx, "looking up node", e)
    finally:
        service.close()

    if node is None:
        console.print(f"[yellow]Node {node_id} not found in {source}[/yellow]")
        ctx.exit(1)

    if output_format == "json":
        click.echo(f'{{"tree": {node.to_json()}}}')
    else:
        console.print(render_tree(node))


@cli.command()
@click.argument("sources", nargs=-1)
@click.option(
    "--timeout", "-t", type=float, default=None, help="Seconds to wait for rebuilds"
)
@click.pass_context
def warm(ctx: click.Context, sources: Tuple[str, ...], timeout: Optional[float]):
    """Build caches for SOURCES (all sources if none given) and report them."""
    console = ctx.obj["console"]
    service = make_service(ctx, watch=False)

    try:
        if sources:
            for source in sources:
                service.request_refresh(source)
            service.dispatcher.wait_idle(timeout)
        else:
            service.warm(timeout)
        print_status(console, service.get_stats())
    except TreeCacheError as e:
        fail(ctx, "warming caches", e)
    finally:
        service.close()


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show configured sources and whether their files exist.

    Caches live in the serving process, so a fresh process reports every
    source as not built. Use `warm` to build and report caches in one go.
    """
    service = make_service(ctx, watch=False)
    try:
        print_status(ctx.obj["console"], service.get_stats())
    finally:
        service.close()


def print_status(console: Console, stats: dict) -> None:
    """Render cache statistics as a table."""
    from rich.table import Table

    if not stats["sources"]:
        console.print("[dim]No sources configured.[/dim]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Source", style="cyan")
    table.add_column("Path")
    table.add_column("Nodes", justify="right")
    table.add_column("Modified")
    table.add_column("Built")
    table.add_column("State")

    for name, info in stats["sources"].items():
        if not info["exists"]:
            state = "[red]missing[/red]"
        elif info["cache_built_at"] is None and not info["refreshing"]:
            state = "[dim]not built[/dim]"
        elif info["refreshing"]:
            state = "[yellow]refreshing[/yellow]"
        elif info["stale"]:
            state = "[yellow]stale[/yellow]"
        else:
            state = "[green]fresh[/green]"
        table.add_row(
            name,
            info["path"],
            f"{info['nodes']:,}",
            format_timestamp(info["source_modified_at"]),
            format_timestamp(info["cache_built_at"]),
            state,
        )

    console.print(table)
    console.print(
        f"[dim]Active refreshes:[/dim] {stats['active_refreshes']} "
        f"/ {stats['max_workers']}"
    )


def main():
    """Entry point for the CLI application."""
    cli()
