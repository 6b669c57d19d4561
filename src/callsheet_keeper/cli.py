from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import load_settings
from .endpoint import resolve_with_settings
from .google_auth import DEFAULT_TOKEN_PATH, get_credentials
from .runner import DRIVE_SCOPES, GMAIL_SCOPES, STATUS_ERROR, run_once

app = typer.Typer(add_completion=False, help="Call sheet keeper")

SCOPES = list({*GMAIL_SCOPES, *DRIVE_SCOPES})


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def auth(
    credentials: Path = typer.Option(..., exists=True, help="Path to Google OAuth credentials.json"),
    token: Path = typer.Option(DEFAULT_TOKEN_PATH, help="Where to store token.json"),
):
    """Authenticate with Google and store a token file."""
    get_credentials(scopes=SCOPES, credentials_path=credentials, token_path=token)
    typer.echo(f"Token saved to: {token}")


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, help="Path to config.yaml"),
    credentials: Optional[Path] = typer.Option(None, help="Path to Google OAuth credentials.json (first run only)"),
    token: Path = typer.Option(DEFAULT_TOKEN_PATH, help="token.json path"),
    service_account: Optional[Path] = typer.Option(None, help="Service-account key file (unattended runs)"),
    subject: Optional[str] = typer.Option(None, help="Mailbox to impersonate with the service account"),
):
    """File new PDFs from unread mail into the Drive folder."""
    settings = load_settings(config)
    configure_logging(settings.log_level)
    creds = get_credentials(
        scopes=SCOPES,
        credentials_path=credentials,
        token_path=token,
        service_account_path=service_account,
        subject=subject,
    )

    report = run_once(settings=settings, creds=creds)
    for p in report.placed:
        typer.echo(f"{p.thread_id}: {p.type_id} -> {p.filename}")
    typer.echo(
        f"{report.status}: placed={len(report.placed)} swept={report.swept} "
        f"threads_read={len(report.threads_marked_read)}"
    )
    if report.status == STATUS_ERROR:
        typer.echo(f"error: {report.error}", err=True)
        raise typer.Exit(code=1)


@app.command()
def resolve(
    filename: Optional[str] = typer.Argument(None, help="Exact file name in the root folder, e.g. unitlist.pdf"),
    config: Optional[Path] = typer.Option(None, help="Path to config.yaml"),
    token: Path = typer.Option(DEFAULT_TOKEN_PATH, help="token.json path"),
    service_account: Optional[Path] = typer.Option(None, help="Service-account key file"),
    subject: Optional[str] = typer.Option(None, help="User to impersonate with the service account"),
):
    """Print a JSON payload with the file's link, or an error message."""
    settings = load_settings(config)
    configure_logging(settings.log_level)
    creds = get_credentials(scopes=SCOPES, token_path=token, service_account_path=service_account, subject=subject)
    typer.echo(json.dumps(resolve_with_settings(filename, settings=settings, creds=creds)))


if __name__ == "__main__":
    app()
