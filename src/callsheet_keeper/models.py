"""Typed containers shared between the engine and the store adapters."""

from __future__ import annotations

from dataclasses import dataclass, field


PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class MailAttachment:
    filename: str
    mime_type: str
    data: bytes

    @property
    def is_pdf(self) -> bool:
        return (self.mime_type or "").lower() == PDF_MIME_TYPE


@dataclass
class MailMessage:
    id: str
    thread_id: str
    subject: str = ""
    body: str = ""
    unread: bool = True
    attachments: list[MailAttachment] = field(default_factory=list)


@dataclass
class MailThread:
    """A conversation whose messages are ordered oldest-first."""

    id: str
    messages: list[MailMessage] = field(default_factory=list)


@dataclass(frozen=True)
class StoredFile:
    id: str
    name: str
    web_link: str | None = None
