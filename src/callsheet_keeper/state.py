from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from dateutil import parser as dtparser

from .stores import PropertyStore

logger = logging.getLogger(__name__)

LAST_RUN_DATE_KEY = "lastRunDate"
SEQUENCE_COUNTER_KEY = "dailySequenceCounter"


@dataclass
class RunState:
    last_run_date: date | None = None
    counter: int = 0


def _parse_date(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return dtparser.parse(raw).date()
    except (ValueError, OverflowError):
        logger.warning("Unreadable %s %r, treating as no prior run", LAST_RUN_DATE_KEY, raw)
        return None


def _parse_counter(raw: str | None) -> int:
    if not raw:
        return 0
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Unreadable %s %r, treating as 0", SEQUENCE_COUNTER_KEY, raw)
        return 0
    return max(value, 0)


class RunStateStore:
    """Typed view over the two persisted run properties."""

    def __init__(self, props: PropertyStore) -> None:
        self.props = props

    def load(self) -> RunState:
        return RunState(
            last_run_date=_parse_date(self.props.get_property(LAST_RUN_DATE_KEY)),
            counter=_parse_counter(self.props.get_property(SEQUENCE_COUNTER_KEY)),
        )

    def save_last_run_date(self, day: date) -> None:
        self.props.set_property(LAST_RUN_DATE_KEY, day.isoformat())

    def save_counter(self, value: int) -> None:
        self.props.set_property(SEQUENCE_COUNTER_KEY, str(value))
