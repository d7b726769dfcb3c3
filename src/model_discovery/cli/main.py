"""Main CLI application for the Model Discovery Service.

Usage:
    model-discovery start [OPTIONS]        Start the API server
    model-discovery search QUERY [OPTIONS] Search models through the cache
    model-discovery history                Show recent searches
    model-discovery cache-stats            Show cache contents
    model-discovery cache-clear            Clear cached searches
    model-discovery cache-import FILE      Store saved results in the cache
    model-discovery --help                 Show help
"""

import typer
from rich.console import Console

from model_discovery.cli import commands

app = typer.Typer(
    name="model-discovery",
    help="Model Discovery Service CLI - cached search over remote model catalogs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
)

console = Console()

app.command(name="start")(commands.start)
app.command(name="search")(commands.search)
app.command(name="history")(commands.history)
app.command(name="cache-stats")(commands.cache_stats)
app.command(name="cache-clear")(commands.cache_clear)
app.command(name="cache-import")(commands.cache_import)


@app.callback(invoke_without_command=True)  # type: ignore[untyped-decorator]
def main(ctx: typer.Context) -> None:
    """Model Discovery Service CLI.

    Use 'model-discovery COMMAND --help' for more information on a command.
    """
    if ctx.invoked_subcommand is None:
        console.print()
        console.print("[bold blue]Model Discovery Service[/bold blue]")
        console.print()
        console.print("Use [green]model-discovery --help[/green] to see available commands.")
        console.print()
        raise typer.Exit(0)


if __name__ == "__main__":
    app()
