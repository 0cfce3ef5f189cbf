"""Main CLI application module."""

import typer

from .sync_commands import sync_app

# Create the main CLI application
app = typer.Typer(
    help="Identity Sync CLI - keep local identity records and the provider in step",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(sync_app, name="sync")


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", "-h", help="Bind address (defaults to app.host)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (defaults to app.port)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from src.identity_sync.runtime.context import get_config

    config = get_config()
    uvicorn.run(
        "src.identity_sync.api.http.app:app",
        host=host or config.app.host,
        port=port or config.app.port,
        reload=reload,
        access_log=False,  # Access logging happens in middleware
    )


def main() -> None:
    """Main entry point for the CLI."""
    from src.identity_sync.api.utils.app_startup import configure_logging

    configure_logging()
    app()


if __name__ == "__main__":
    main()
