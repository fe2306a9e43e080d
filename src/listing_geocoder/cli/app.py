"""Typer CLI root application with serve command."""

import typer

from listing_geocoder.core.config import get_settings
from listing_geocoder.core.logging import setup_logging

app = typer.Typer(name="listing-geocoder", help="Listing address geocoding queue CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json_logs=settings.log_json)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),  # noqa: FBT001
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server (and the in-process geocoding scheduler, if enabled)."""
    import uvicorn

    uvicorn.run(
        "listing_geocoder.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from listing_geocoder.cli.db_cmd import db_app
    from listing_geocoder.cli.geocode_cmd import geocode_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(geocode_app, name="geocode", help="Geocoding queue commands")


_register_subcommands()
