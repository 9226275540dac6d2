"""Query the costar graph from the command line.

Commands:
1. path: shortest costar chain between two people (by TMDB person id)
2. search: prefix search over person names, to look up ids
3. stats: node and edge counts plus the most connected person

Usage:
    python scripts/query_graph.py search "Leo"
    python scripts/query_graph.py path 6193 1892
    python scripts/query_graph.py stats
"""

import sys
from pathlib import Path

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import typer
from rich.console import Console
from rich.table import Table

from degrees.errors import StoreUnavailable
from degrees.retrieval.connection_service import ConnectionService
from degrees.utils.config import load_config
from degrees.utils.log_setup import configure_logging

app = typer.Typer()
console = Console()


def _service(config_path: str, verbose: bool) -> ConnectionService:
    config = load_config(config_path)
    config.logging.level = "DEBUG" if verbose else "WARNING"
    configure_logging(config.logging, verbose=verbose)
    # Local CLI use is not subject to per-client quotas.
    config.retrieval.enable_client_limits = False
    return ConnectionService(config)


@app.command()
def path(
    source_id: int,
    target_id: int,
    config_path: str = "config/config.yaml",
    verbose: bool = False,
):
    """Show the shortest costar path between two people."""
    try:
        service = _service(config_path, verbose)
    except StoreUnavailable as e:
        console.print(f"[bold red]Graph store unavailable:[/bold red] {e}")
        raise typer.Exit(code=1)

    try:
        result = service.find_connection(source_id, target_id)
    finally:
        service.close()

    if result.same_person:
        console.print("[bold green]Same person: 0 degrees of separation[/bold green]")
        return
    if not result.found:
        console.print(f"[yellow]No connection found between {source_id} and {target_id}.[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"{result.degrees} degrees of separation")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Person", style="cyan")
    table.add_column("Movie", style="magenta")
    table.add_column("Year", justify="right")

    for i, step in enumerate(result.steps):
        if step.is_person:
            table.add_row(str(i // 2 + 1), f"{step.person.name} ({step.person.tmdb_id})", "", "")
        else:
            year = str(step.movie_year) if step.movie_year else "?"
            table.add_row("", "", step.movie_title, year)

    console.print(table)


@app.command()
def search(
    query: str,
    limit: int = 10,
    config_path: str = "config/config.yaml",
    verbose: bool = False,
):
    """Find people whose name words start with the given prefixes."""
    try:
        service = _service(config_path, verbose)
    except StoreUnavailable as e:
        console.print(f"[bold red]Graph store unavailable:[/bold red] {e}")
        raise typer.Exit(code=1)

    try:
        people = service.search_people(query, limit=limit)
    finally:
        service.close()

    if not people:
        console.print(f"[yellow]No people match {query!r}.[/yellow]")
        return

    table = Table(title=f"People matching {query!r}")
    table.add_column("TMDB id", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    for person in people:
        table.add_row(str(person.tmdb_id), person.name)
    console.print(table)


@app.command()
def stats(config_path: str = "config/config.yaml", verbose: bool = False):
    """Show graph size and the most connected person."""
    try:
        service = _service(config_path, verbose)
    except StoreUnavailable as e:
        console.print(f"[bold red]Graph store unavailable:[/bold red] {e}")
        raise typer.Exit(code=1)

    try:
        graph_stats = service.get_stats()
    finally:
        service.close()

    table = Table(title="Graph statistics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("People", str(graph_stats.person_count))
    table.add_row("Costar edges", str(graph_stats.edge_count))
    if graph_stats.most_connected_name is not None:
        table.add_row(
            "Most connected",
            f"{graph_stats.most_connected_name} ({graph_stats.most_connected_degree} edges)",
        )
    console.print(table)


if __name__ == "__main__":
    app()
