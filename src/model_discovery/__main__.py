"""Entry point for running the model discovery service as a module.

Thin wrapper around the Typer CLI application.

Usage:
    python -m model_discovery start           # Start the API server
    python -m model_discovery search llama    # Search through the cache
    python -m model_discovery --help          # Show all commands
"""


def main() -> None:
    """Main entry point - delegates to Typer CLI app."""
    from model_discovery.cli.main import app

    app()


if __name__ == "__main__":
    main()
