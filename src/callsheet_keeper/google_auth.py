from __future__ import annotations

from pathlib import Path
from typing import Sequence

from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow


DEFAULT_TOKEN_PATH = Path("~/.config/callsheet-keeper/token.json").expanduser()


def get_credentials(
    *,
    scopes: Sequence[str],
    credentials_path: Path | None = None,
    token_path: Path = DEFAULT_TOKEN_PATH,
    service_account_path: Path | None = None,
    subject: str | None = None,
):
    """Credentials for the scheduled job.

    A service-account key (optionally impersonating `subject` via domain-wide
    delegation) wins when given; otherwise a cached user token is used and
    refreshed, and the browser flow runs only when there is no usable token.
    """
    if service_account_path:
        sa = service_account.Credentials.from_service_account_file(str(service_account_path), scopes=list(scopes))
        return sa.with_subject(subject) if subject else sa

    token_path.parent.mkdir(parents=True, exist_ok=True)

    creds: Credentials | None = None
    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), scopes=list(scopes))

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
        token_path.write_text(creds.to_json())
        return creds

    if not credentials_path:
        raise FileNotFoundError(
            f"No valid token at {token_path}. Run `callsheet-keeper auth --credentials credentials.json` first."
        )

    flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=list(scopes))
    creds = flow.run_local_server(port=0)
    token_path.write_text(creds.to_json())
    return creds
