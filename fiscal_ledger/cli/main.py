"""Entry point of the ``fiscal-ledger`` command."""

from typing import Optional

import typer
import uvicorn

from fiscal_ledger.core.logging_config import setup_logging
from fiscal_ledger.server.core.config import settings

from . import ledger, search

app = typer.Typer(
    name="fiscal-ledger",
    help="fiscal-ledger maintenance commands",
    add_completion=False,
)
app.add_typer(ledger.app, name="ledger")
app.add_typer(search.app, name="search")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    setup_logging(log_level="DEBUG" if verbose else settings.log_level, enable_file=False)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address, FISCAL_LEDGER_SERVER_HOST by default"),
    port: Optional[int] = typer.Option(None, "--port", help="Port, FISCAL_LEDGER_SERVER_PORT by default"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the API server."""
    uvicorn.run(
        "fiscal_ledger.server.main:app",
        host=host or settings.server_host,
        port=port or settings.server_port,
        reload=reload,
        log_config=None,
    )


if __name__ == "__main__":
    app()
