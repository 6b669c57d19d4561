"""Document types and how attachments map onto them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterable, Sequence

from .errors import ConfigError
from .matching import KeywordMatcher


class RuleRole(str, Enum):
    DRIVER = "driver"
    FOLLOWER = "follower"
    PLAIN = "plain"


@dataclass(frozen=True)
class DocumentRule:
    type_id: str
    keywords: tuple[str, ...]
    archive_folder: str
    role: RuleRole = RuleRole.PLAIN
    matcher: KeywordMatcher = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "keywords", tuple(self.keywords))
        object.__setattr__(self, "matcher", KeywordMatcher(self.keywords))

    @property
    def stem(self) -> str:
        return PurePosixPath(self.type_id).stem

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.type_id).suffix or ".pdf"

    def numbered_name(self, number: int) -> str:
        return f"{self.stem}{number}{self.suffix}"

    def matches(self, filename: str) -> bool:
        return self.matcher(filename)


class RuleTable:
    """Rules in declaration order; earlier rules win an attachment both could claim."""

    def __init__(self, rules: Iterable[DocumentRule]) -> None:
        self._rules: tuple[DocumentRule, ...] = tuple(rules)
        seen: set[str] = set()
        for rule in self._rules:
            if rule.type_id in seen:
                raise ConfigError(f"Duplicate document type: {rule.type_id}")
            seen.add(rule.type_id)
            if not rule.keywords:
                raise ConfigError(f"Document type {rule.type_id} has no keywords")

        drivers = [r for r in self._rules if r.role is RuleRole.DRIVER]
        if len(drivers) != 1:
            raise ConfigError(f"Exactly one driver rule is required, found {len(drivers)}")
        followers = [r for r in self._rules if r.role is RuleRole.FOLLOWER]
        if len(followers) > 1:
            raise ConfigError(f"At most one follower rule is supported, found {len(followers)}")

        self._driver = drivers[0]
        self._follower = followers[0] if followers else None

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def rules_in_order(self) -> Sequence[DocumentRule]:
        return self._rules

    def driver_rule(self) -> DocumentRule:
        return self._driver

    def follower_rule(self) -> DocumentRule | None:
        return self._follower

    def rule_for_file_stem(self, name: str) -> DocumentRule | None:
        """First rule whose stem occurs in `name` once the extension is dropped."""
        file_stem = PurePosixPath(name).stem.lower()
        for rule in self._rules:
            if rule.stem.lower() in file_stem:
                return rule
        return None


DEFAULT_EXCLUSION_TERMS = ("prelim", "draft")


def default_rules() -> list[DocumentRule]:
    return [
        DocumentRule("callsheet.pdf", ("call sheet", "callsheet", "CS"), "Old Callsheets", RuleRole.DRIVER),
        DocumentRule("sides.pdf", ("sides",), "Old Sides", RuleRole.FOLLOWER),
        DocumentRule("unitlist.pdf", ("unit list", "unitlist", "UL"), "Old Unit Lists"),
        DocumentRule(
            "schedule.pdf",
            ("shooting schedule", "schedule", "one liner", "oneliner"),
            "Old Schedules",
        ),
        DocumentRule("crewlist.pdf", ("crew list", "crewlist"), "Old Crew Lists"),
    ]
