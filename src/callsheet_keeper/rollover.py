"""Day boundaries and the driver sequence counter."""

from __future__ import annotations

import logging
from datetime import date

from .reconcile import ArchiveSweeper
from .rules import DocumentRule
from .state import RunState, RunStateStore
from .stores import FileStore

logger = logging.getLogger(__name__)


class DayRolloverPolicy:
    """Tracks one run's view of the day and the driver sequence.

    The sweep of yesterday's files is deferred until the first driver
    document of the new day is about to be placed, and happens at most once
    per run. A new day without driver documents leaves everything in place.
    """

    def __init__(
        self,
        *,
        store: RunStateStore,
        files: FileStore,
        sweeper: ArchiveSweeper,
        driver: DocumentRule,
        root_id: str,
        today: date,
    ) -> None:
        self.store = store
        self.files = files
        self.sweeper = sweeper
        self.driver = driver
        self.root_id = root_id
        self.today = today
        self.state = RunState()
        self.rollover_pending = False
        self.swept = 0
        self._sweep_done = False

    def begin(self) -> RunState:
        self.state = self.store.load()
        if self.state.last_run_date != self.today:
            logger.info(
                "New day (last run %s, today %s); sweep deferred to first %s",
                self.state.last_run_date,
                self.today,
                self.driver.type_id,
            )
            self.rollover_pending = True
            self.state.counter = 0
        else:
            self.sanity_check()
        return self.state

    def sanity_check(self) -> None:
        """Re-align a same-day counter with the numbered driver files actually present."""
        names = {f.name for f in self.files.list_files(self.root_id)}
        first = self.driver.numbered_name(1)
        if first not in names:
            if self.state.counter != 0:
                logger.warning("%s is missing; resetting sequence counter from %d to 0", first, self.state.counter)
                self.state.counter = 0
                self.store.save_counter(0)
            return

        highest = self.state.counter
        while self.driver.numbered_name(highest + 1) in names:
            highest += 1
        if highest != self.state.counter:
            logger.warning("Sequence counter %d behind existing files; raising to %d", self.state.counter, highest)
            self.state.counter = highest
            self.store.save_counter(highest)

    def before_driver_placement(self) -> None:
        if not self.rollover_pending or self._sweep_done:
            return
        self.swept = self.sweeper.sweep(self.root_id)
        self._sweep_done = True
        self.store.save_last_run_date(self.today)
        self.state.last_run_date = self.today
        self.rollover_pending = False

    def next_sequence(self) -> int:
        self.state.counter += 1
        self.store.save_counter(self.state.counter)
        return self.state.counter
