"""Promote-and-archive placement in the canonical folder, and the day sweep."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable

from .models import PDF_MIME_TYPE, StoredFile
from .rules import DocumentRule, RuleTable
from .stores import FileStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def archive_name(filename: str, when: datetime) -> str:
    """`callsheet.pdf` -> `callsheet_2026-10-19T07-30-05.pdf`.

    One-second resolution: two archivals of the same name within a second
    produce the same archived name.
    """
    p = PurePosixPath(filename)
    stamp = when.replace(tzinfo=None).isoformat(timespec="seconds").replace(":", "-")
    return f"{p.stem}_{stamp}{p.suffix or '.pdf'}"


class FolderCache:
    """Archive folders under the root, looked up (or created) once per run."""

    def __init__(self, files: FileStore, root_id: str) -> None:
        self.files = files
        self.root_id = root_id
        self._ids: dict[str, str] = {}

    def folder_id(self, name: str) -> str:
        if name not in self._ids:
            folder_id = self.files.find_folder(self.root_id, name)
            if folder_id is None:
                logger.info("Creating archive folder %r", name)
                folder_id = self.files.create_folder(self.root_id, name)
            self._ids[name] = folder_id
        return self._ids[name]


class FileReconciler:
    def __init__(self, files: FileStore, folders: FolderCache, clock: Clock) -> None:
        self.files = files
        self.folders = folders
        self.clock = clock

    def archive(self, file: StoredFile, rule: DocumentRule) -> str:
        new_name = archive_name(file.name, self.clock())
        archive_id = self.folders.folder_id(rule.archive_folder)
        self.files.move_file(file.id, archive_id, new_name)
        logger.info("Archived %s as %s/%s", file.name, rule.archive_folder, new_name)
        return new_name

    def place(self, folder_id: str, rule: DocumentRule, filename: str, data: bytes) -> StoredFile:
        """Write `data` as `filename`, first moving whatever holds that name into the rule's archive.

        The incoming content is only written once the slot is empty, so a
        failure in between leaves the old version archived and the slot empty.
        """
        for existing in self.files.list_files(folder_id, name=filename):
            self.archive(existing, rule)
        return self.create(folder_id, filename, data)

    def create(self, folder_id: str, filename: str, data: bytes) -> StoredFile:
        created = self.files.create_file(folder_id, filename, data, PDF_MIME_TYPE)
        logger.info("Placed %s (%s)", filename, created.id)
        return created


class ArchiveSweeper:
    def __init__(self, files: FileStore, rules: RuleTable, reconciler: FileReconciler) -> None:
        self.files = files
        self.rules = rules
        self.reconciler = reconciler

    def sweep(self, root_id: str) -> int:
        """Move every current file in the root that belongs to a known type into its archive."""
        moved = 0
        for file in self.files.list_files(root_id):
            rule = self.rules.rule_for_file_stem(file.name)
            if rule is None:
                logger.debug("Sweep leaves %s in place", file.name)
                continue
            self.reconciler.archive(file, rule)
            moved += 1
        logger.info("Day sweep archived %d file(s)", moved)
        return moved
