"""Webhook ping when a new call sheet lands."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from .config import NotifierSettings

logger = logging.getLogger(__name__)

GEMINI_APP_URL = "https://gemini.google.com/app"


def travel_url(prompt_template: str, primary_url: str) -> str:
    prompt = prompt_template.format(url=primary_url)
    return f"{GEMINI_APP_URL}?q={quote(prompt, safe='')}"


def build_payload(
    settings: NotifierSettings, *, title: str, text: str, primary_url: str
) -> dict[str, Any]:
    return {
        "title": title,
        "text": text,
        "actions": [
            {"name": settings.primary_action_name, "input": primary_url},
            {"name": settings.travel_action_name, "input": travel_url(settings.travel_prompt, primary_url)},
        ],
    }


class WebhookNotifier:
    """Fire-and-forget POST; failures are logged and swallowed."""

    def __init__(self, settings: NotifierSettings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.webhook_url)

    def notify(self, *, title: str, text: str, primary_url: str) -> bool:
        if not self.enabled:
            return False
        try:
            payload = build_payload(self.settings, title=title, text=text, primary_url=primary_url)
            resp = self.session.post(
                self.settings.webhook_url, json=payload, timeout=self.settings.timeout_seconds
            )
            resp.raise_for_status()
        except (requests.RequestException, KeyError, IndexError, ValueError) as e:
            logger.warning("Webhook notification failed: %s", e)
            return False
        logger.info("Webhook notified: %s", title)
        return True
