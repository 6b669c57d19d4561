from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence
from zoneinfo import ZoneInfo

from googleapiclient.discovery import build

from .classifier import AttachmentClassifier, Placement
from .config import Settings
from .drive_client import DriveFileStore
from .gmail_client import GmailMailStore
from .models import MailMessage, MailThread
from .notify import WebhookNotifier
from .reconcile import ArchiveSweeper, FileReconciler, FolderCache
from .rollover import DayRolloverPolicy
from .rules import RuleTable
from .state import RunStateStore
from .stores import FileRunLock, FileStore, JsonPropertyStore, MailStore, PropertyStore, RunLock

logger = logging.getLogger(__name__)


GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]
DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]

DRIVE_ROOT_ALIAS = "root"

STATUS_OK = "ok"
STATUS_LOCKED = "locked"
STATUS_ERROR = "error"


@dataclass
class RunReport:
    status: str = STATUS_OK
    placed: list[Placement] = field(default_factory=list)
    threads_marked_read: list[str] = field(default_factory=list)
    swept: int = 0
    error: str | None = None


def make_clock(timezone: str | None) -> Callable[[], datetime]:
    if not timezone:
        return datetime.now
    tz = ZoneInfo(timezone)
    return lambda: datetime.now(tz)


def resolve_root_folder(files: FileStore, *, folder_id: str | None, folder_name: str) -> str:
    if folder_id:
        return folder_id
    existing = files.find_folder(DRIVE_ROOT_ALIAS, folder_name)
    if existing:
        return existing
    logger.info("Creating root folder %r", folder_name)
    return files.create_folder(DRIVE_ROOT_ALIAS, folder_name)


def unique_threads(threads: Sequence[MailThread], limit: int | None = None) -> list[MailThread]:
    out: list[MailThread] = []
    seen: set[str] = set()
    for t in threads:
        if t.id in seen:
            continue
        seen.add(t.id)
        out.append(t)
        if limit and len(out) >= limit:
            break
    return out


class RunCoordinator:
    """One locked pass over the inbox: classify, file, then mark threads read."""

    def __init__(
        self,
        *,
        mail: MailStore,
        files: FileStore,
        props: PropertyStore,
        lock: RunLock,
        rules: RuleTable,
        exclusion_terms: Sequence[str],
        query: str,
        root_folder_id: str | None = None,
        root_folder_name: str = "",
        lock_timeout: float = 30.0,
        max_threads: int | None = None,
        notifier: WebhookNotifier | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.mail = mail
        self.files = files
        self.state_store = RunStateStore(props)
        self.lock = lock
        self.rules = rules
        self.exclusion_terms = list(exclusion_terms)
        self.query = query
        self.root_folder_id = root_folder_id
        self.root_folder_name = root_folder_name
        self.lock_timeout = lock_timeout
        self.max_threads = max_threads
        self.notifier = notifier
        self.clock = clock

    def run(self) -> RunReport:
        report = RunReport()
        if not self.lock.try_acquire(self.lock_timeout):
            logger.info("Another run is active; exiting")
            report.status = STATUS_LOCKED
            return report

        try:
            self._process(report)
        except Exception as e:
            logger.exception("Run aborted")
            report.status = STATUS_ERROR
            report.error = str(e)
            return report
        finally:
            self.lock.release()

        logger.info(
            "Run complete: placed=%d swept=%d threads_read=%d",
            len(report.placed),
            report.swept,
            len(report.threads_marked_read),
        )
        return report

    def _process(self, report: RunReport) -> None:
        now = self.clock()
        root_id = resolve_root_folder(
            self.files, folder_id=self.root_folder_id, folder_name=self.root_folder_name
        )
        folders = FolderCache(self.files, root_id)
        reconciler = FileReconciler(self.files, folders, self.clock)
        rollover = DayRolloverPolicy(
            store=self.state_store,
            files=self.files,
            sweeper=ArchiveSweeper(self.files, self.rules, reconciler),
            driver=self.rules.driver_rule(),
            root_id=root_id,
            today=now.date(),
        )
        rollover.begin()

        classifier = AttachmentClassifier(
            rules=self.rules,
            exclusion_terms=self.exclusion_terms,
            reconciler=reconciler,
            rollover=rollover,
            root_id=root_id,
            on_driver_placed=self._notify,
        )

        threads = unique_threads(self.mail.search_threads(self.query), self.max_threads)
        logger.info("%d candidate thread(s)", len(threads))
        for thread in threads:
            thread_processed = False
            for message in thread.messages:
                if not message.unread:
                    continue
                result = classifier.classify(message)
                report.placed.extend(result.placements)
                thread_processed = thread_processed or result.processed
            report.swept = rollover.swept
            if thread_processed:
                # everything in the thread is placed; read before the lock is released
                self.mail.mark_thread_read(thread.id)
                report.threads_marked_read.append(thread.id)
            else:
                logger.debug("Thread %s had nothing to file; leaving unread", thread.id)

    def _notify(self, placement: Placement, message: MailMessage) -> None:
        if self.notifier is None or not self.notifier.enabled:
            return
        try:
            url = placement.file.web_link or self.files.share_link(placement.file.id)
            self.notifier.notify(
                title=f"New {placement.filename}",
                text=message.subject or placement.filename,
                primary_url=url,
            )
        except Exception as e:
            logger.warning("Notification for %s failed: %s", placement.filename, e)


def run_once(*, settings: Settings, creds) -> RunReport:
    gmail = build("gmail", "v1", credentials=creds)
    drive = build("drive", "v3", credentials=creds)

    coordinator = RunCoordinator(
        mail=GmailMailStore(gmail, user_id=settings.gmail.user_id, max_threads=settings.gmail.max_threads),
        files=DriveFileStore(drive),
        props=JsonPropertyStore(_expand(settings.state.path)),
        lock=FileRunLock(_expand(settings.lock.path)),
        rules=settings.rule_table(),
        exclusion_terms=settings.exclusion_terms,
        query=settings.gmail.query,
        root_folder_id=settings.drive.root_folder_id,
        root_folder_name=settings.drive.root_folder_name,
        lock_timeout=settings.lock.timeout_seconds,
        max_threads=settings.gmail.max_threads,
        notifier=WebhookNotifier(settings.notifier),
        clock=make_clock(settings.timezone),
    )
    return coordinator.run()


def _expand(path: str) -> Path:
    return Path(path).expanduser()
