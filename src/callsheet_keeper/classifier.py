from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .matching import is_excluded
from .models import MailAttachment, MailMessage, StoredFile
from .reconcile import FileReconciler
from .rollover import DayRolloverPolicy
from .rules import DocumentRule, RuleRole, RuleTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    type_id: str
    filename: str
    file: StoredFile
    message_id: str
    thread_id: str
    number: int = 0


@dataclass
class ClassificationResult:
    consumed: set[str] = field(default_factory=set)
    number: int = 0
    placements: list[Placement] = field(default_factory=list)

    @property
    def processed(self) -> bool:
        return bool(self.consumed)


class AttachmentClassifier:
    """Assigns a message's PDFs to document types and files them.

    Pass 1 finds the driver document and allocates its sequence number; pass 2
    handles every other type, numbering the follower to match when the driver
    arrived in the same message.
    """

    def __init__(
        self,
        *,
        rules: RuleTable,
        exclusion_terms: Sequence[str],
        reconciler: FileReconciler,
        rollover: DayRolloverPolicy,
        root_id: str,
        on_driver_placed: Callable[[Placement, MailMessage], None] | None = None,
    ) -> None:
        self.rules = rules
        self.exclusion_terms = list(exclusion_terms)
        self.reconciler = reconciler
        self.rollover = rollover
        self.root_id = root_id
        self.on_driver_placed = on_driver_placed

    def candidates(self, message: MailMessage) -> list[MailAttachment]:
        out: list[MailAttachment] = []
        for att in message.attachments:
            if not att.is_pdf:
                logger.debug("Skipping non-PDF %s (%s)", att.filename, att.mime_type)
                continue
            if is_excluded(att.filename, message.subject, message.body, self.exclusion_terms):
                logger.info("Skipping %s in message %s: exclusion term present", att.filename, message.id)
                continue
            out.append(att)
        return out

    def classify(self, message: MailMessage) -> ClassificationResult:
        result = ClassificationResult()
        attachments = self.candidates(message)
        claimed: set[int] = set()

        driver = self.rules.driver_rule()
        for i, att in enumerate(attachments):
            if driver.matches(att.filename):
                self._place_driver(driver, att, message, result)
                claimed.add(i)
                break

        for rule in self.rules.rules_in_order():
            if rule.type_id in result.consumed or rule.role is RuleRole.DRIVER:
                continue
            for i, att in enumerate(attachments):
                if i in claimed or not rule.matches(att.filename):
                    continue
                self._place_other(rule, att, message, result)
                claimed.add(i)
                break

        if not result.processed and attachments:
            logger.debug("No document type matched in message %s", message.id)
        return result

    def _place_driver(
        self, driver: DocumentRule, att: MailAttachment, message: MailMessage, result: ClassificationResult
    ) -> None:
        self.rollover.before_driver_placement()
        number = self.rollover.next_sequence()
        filename = driver.numbered_name(number)
        stored = self.reconciler.place(self.root_id, driver, filename, att.data)
        placement = Placement(driver.type_id, filename, stored, message.id, message.thread_id, number)
        result.number = number
        result.consumed.add(driver.type_id)
        result.placements.append(placement)
        logger.info("%s -> %s", att.filename, filename)
        if self.on_driver_placed is not None:
            self.on_driver_placed(placement, message)

    def _place_other(
        self, rule: DocumentRule, att: MailAttachment, message: MailMessage, result: ClassificationResult
    ) -> None:
        if rule.role is RuleRole.FOLLOWER and result.number > 0:
            # numbered files are never overwritten, so nothing to archive
            filename = rule.numbered_name(result.number)
            stored = self.reconciler.create(self.root_id, filename, att.data)
            number = result.number
        else:
            filename = rule.type_id
            stored = self.reconciler.place(self.root_id, rule, filename, att.data)
            number = 0
        result.consumed.add(rule.type_id)
        result.placements.append(Placement(rule.type_id, filename, stored, message.id, message.thread_id, number))
        logger.info("%s -> %s", att.filename, filename)
