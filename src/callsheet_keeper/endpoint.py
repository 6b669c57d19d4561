"""Filename -> shareable link lookup, answered with a payload rather than an error status."""

from __future__ import annotations

import logging
from typing import Any

from googleapiclient.discovery import build

from .config import Settings
from .drive_client import DriveFileStore
from .runner import DRIVE_ROOT_ALIAS
from .stores import FileStore

logger = logging.getLogger(__name__)

MISSING_FILENAME = "Missing 'filename' parameter"


def resolve(filename: str | None, *, files: FileStore, root_id: str | None) -> dict[str, Any]:
    """Look `filename` up by exact name in the canonical root only (archives are not searched)."""
    if not filename:
        return {"error": MISSING_FILENAME}
    try:
        if not root_id:
            return {"error": "Root folder not found"}
        found = files.list_files(root_id, name=filename)
        if not found:
            return {"error": f"File not found: {filename}"}
        first = found[0]
        return {"url": first.web_link or files.share_link(first.id)}
    except Exception as e:
        logger.exception("Lookup of %r failed", filename)
        return {"error": str(e) or e.__class__.__name__}


def resolve_with_settings(filename: str | None, *, settings: Settings, creds) -> dict[str, Any]:
    if not filename:
        return {"error": MISSING_FILENAME}
    try:
        files = DriveFileStore(build("drive", "v3", credentials=creds))
        root_id = settings.drive.root_folder_id or files.find_folder(DRIVE_ROOT_ALIAS, settings.drive.root_folder_name)
    except Exception as e:
        logger.exception("Drive unavailable")
        return {"error": str(e) or e.__class__.__name__}
    return resolve(filename, files=files, root_id=root_id)
