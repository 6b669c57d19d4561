from __future__ import annotations

import base64
from typing import Iterable

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from .errors import StoreError
from .models import MailAttachment, MailMessage, MailThread

UNREAD_LABEL = "UNREAD"


def _header(headers: list[dict], name: str) -> str | None:
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value")
    return None


def _walk_parts(payload: dict) -> Iterable[dict]:
    stack = [payload]
    while stack:
        part = stack.pop()
        yield part
        # reversed so parts come out in document order
        for sub in reversed(part.get("parts", []) or []):
            stack.append(sub)


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data.encode("utf-8"))


def search_thread_ids(service: Resource, *, user_id: str, query: str, max_results: int = 50) -> list[str]:
    out: list[str] = []
    req = service.users().threads().list(userId=user_id, q=query, maxResults=min(max_results, 500))
    while req is not None and len(out) < max_results:
        res = req.execute()
        for t in res.get("threads", []) or []:
            if t["id"] not in out:
                out.append(t["id"])
            if len(out) >= max_results:
                break
        req = service.users().threads().list_next(previous_request=req, previous_response=res)
    return out


def get_thread_full(service: Resource, *, user_id: str, thread_id: str) -> dict:
    return service.users().threads().get(userId=user_id, id=thread_id, format="full").execute()


def message_subject(message_full: dict) -> str | None:
    headers = message_full.get("payload", {}).get("headers", [])
    return _header(headers, "Subject")


def is_unread(message_full: dict) -> bool:
    return UNREAD_LABEL in (message_full.get("labelIds") or [])


def iter_attachments(service: Resource, *, user_id: str, message_full: dict) -> Iterable[MailAttachment]:
    payload = message_full.get("payload") or {}
    for part in _walk_parts(payload):
        filename = part.get("filename")
        body = part.get("body") or {}
        mime_type = part.get("mimeType") or ""
        if not filename:
            continue

        if body.get("attachmentId"):
            att = (
                service.users()
                .messages()
                .attachments()
                .get(userId=user_id, messageId=message_full["id"], id=body["attachmentId"])
                .execute()
            )
            data = _b64decode(att["data"])
        elif body.get("data"):
            data = _b64decode(body["data"])
        else:
            continue
        yield MailAttachment(filename=filename, mime_type=mime_type, data=data)


def get_message_body_text(message_full: dict) -> str:
    """Best-effort plain text extraction from the message payload."""
    payload = message_full.get("payload") or {}

    plain: list[str] = []
    html: list[str] = []

    for part in _walk_parts(payload):
        if part.get("filename"):
            continue
        mime = (part.get("mimeType") or "").lower()
        data = (part.get("body") or {}).get("data")
        if not data:
            continue
        decoded = _b64decode(data).decode("utf-8", errors="ignore")
        if mime == "text/plain":
            plain.append(decoded)
        elif mime == "text/html":
            html.append(decoded)

    if plain:
        return "\n\n".join(plain).strip()
    if html:
        return "\n\n".join(html).strip()
    return message_full.get("snippet") or ""


def mark_thread_read(service: Resource, *, user_id: str, thread_id: str) -> None:
    body = {"addLabelIds": [], "removeLabelIds": [UNREAD_LABEL]}
    service.users().threads().modify(userId=user_id, id=thread_id, body=body).execute()


class GmailMailStore:
    """Mail store over the Gmail API.

    Only unread messages have their attachments downloaded; read ones are
    returned without attachments since the engine skips them anyway.
    """

    def __init__(self, service: Resource, *, user_id: str = "me", max_threads: int = 50) -> None:
        self.service = service
        self.user_id = user_id
        self.max_threads = max_threads

    def _message(self, full: dict, thread_id: str) -> MailMessage:
        unread = is_unread(full)
        attachments = (
            list(iter_attachments(self.service, user_id=self.user_id, message_full=full)) if unread else []
        )
        return MailMessage(
            id=full["id"],
            thread_id=thread_id,
            subject=message_subject(full) or "",
            body=get_message_body_text(full),
            unread=unread,
            attachments=attachments,
        )

    def search_threads(self, query: str) -> list[MailThread]:
        try:
            ids = search_thread_ids(self.service, user_id=self.user_id, query=query, max_results=self.max_threads)
            threads: list[MailThread] = []
            for thread_id in ids:
                full = get_thread_full(self.service, user_id=self.user_id, thread_id=thread_id)
                messages = sorted(full.get("messages", []) or [], key=lambda m: int(m.get("internalDate") or 0))
                threads.append(MailThread(id=thread_id, messages=[self._message(m, thread_id) for m in messages]))
            return threads
        except HttpError as e:
            raise StoreError(f"Gmail search failed: {e}") from e

    def mark_thread_read(self, thread_id: str) -> None:
        try:
            mark_thread_read(self.service, user_id=self.user_id, thread_id=thread_id)
        except HttpError as e:
            raise StoreError(f"Gmail could not mark thread {thread_id} read: {e}") from e
