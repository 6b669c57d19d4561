from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from .errors import ConfigError
from .rules import DEFAULT_EXCLUSION_TERMS, DocumentRule, RuleRole, RuleTable, default_rules


class GmailSettings(BaseModel):
    user_id: str = "me"
    query: str = "is:unread has:attachment filename:pdf"
    max_threads: int = 50


class DriveSettings(BaseModel):
    root_folder_id: Optional[str] = None
    root_folder_name: str = "Production Paperwork"


class RuleSettings(BaseModel):
    type_id: str
    keywords: List[str]
    archive_folder: str
    role: RuleRole = RuleRole.PLAIN

    @field_validator("type_id")
    @classmethod
    def _pdf_basename(cls, value: str) -> str:
        value = value.strip()
        if "/" in value or not value.lower().endswith(".pdf"):
            raise ValueError(f"type_id must be a bare .pdf filename, got {value!r}")
        return value


class StateSettings(BaseModel):
    path: str = "~/.config/callsheet-keeper/state.json"


class LockSettings(BaseModel):
    path: str = "~/.config/callsheet-keeper/run.lock"
    timeout_seconds: float = 30.0


class NotifierSettings(BaseModel):
    webhook_url: Optional[str] = None
    primary_action_name: str = "Open Call Sheet"
    travel_action_name: str = "Plan Travel"
    travel_prompt: str = "Plan my travel to set for the call sheet at {url}"
    timeout_seconds: float = 10.0


class Settings(BaseSettings):
    model_config = ConfigDict(extra="ignore")

    gmail: GmailSettings = Field(default_factory=GmailSettings)
    drive: DriveSettings = Field(default_factory=DriveSettings)
    rules: List[RuleSettings] = Field(
        default_factory=lambda: [
            RuleSettings(type_id=r.type_id, keywords=list(r.keywords), archive_folder=r.archive_folder, role=r.role)
            for r in default_rules()
        ]
    )
    exclusion_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUSION_TERMS))
    state: StateSettings = Field(default_factory=StateSettings)
    lock: LockSettings = Field(default_factory=LockSettings)
    notifier: NotifierSettings = Field(default_factory=NotifierSettings)
    timezone: Optional[str] = None
    log_level: str = "INFO"

    def rule_table(self) -> RuleTable:
        return RuleTable(
            DocumentRule(r.type_id, tuple(r.keywords), r.archive_folder, r.role) for r in self.rules
        )


def default_config_path() -> Path:
    return Path("~/.config/callsheet-keeper/config.yaml").expanduser()


def load_settings(path: Optional[Path] = None) -> Settings:
    path = path or default_config_path()
    if not path.exists():
        # allow running with env-only values
        return Settings()

    data = yaml.safe_load(path.read_text()) or {}
    try:
        settings = Settings.model_validate(data)
        settings.rule_table()
    except ValueError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e
    return settings
