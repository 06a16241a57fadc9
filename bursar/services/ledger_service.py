import asyncio
import logging
from typing import List, Optional, Tuple

from bursar.core.config import settings
from bursar.core.exceptions import LedgerEntryNotFound
from bursar.models.ledger import LedgerEntry, LedgerFilter
from bursar.models.obligation import ObligationRef
from bursar.repositories.ledger_repo import LedgerRepository

logger = logging.getLogger(__name__)


class TransactionLedger:
    """
    Append-only ledger of income and expense events.

    append() only checks that the entry is structurally complete (the model
    does that); it never rejects on business grounds and fails only when
    storage fails. Callers recording a side effect of a primary write use
    append_best_effort(), which bounds the wait and turns any failure into a
    warning.
    """

    def __init__(self, repo: LedgerRepository, append_timeout: Optional[float] = None):
        self.repo = repo
        self.append_timeout = (
            settings.LEDGER_APPEND_TIMEOUT_SECONDS if append_timeout is None else append_timeout
        )

    async def append(self, entry: LedgerEntry) -> str:
        created = await self.repo.create(entry)
        logger.info(
            "Ledger %s %s %s (%s) -> %s",
            created.type.value, created.amount, created.category,
            created.obligation or created.reference_id or "unlinked", created.id
        )
        return created.id

    async def append_best_effort(self, entry: LedgerEntry) -> Tuple[Optional[str], Optional[str]]:
        """
        Append without letting a failure escape.

        Returns (entry_id, None) on success or (None, warning) on failure or
        timeout.
        """
        try:
            entry_id = await asyncio.wait_for(self.append(entry), timeout=self.append_timeout)
            return entry_id, None
        except asyncio.TimeoutError:
            warning = (
                f"Transaction for {entry.description or entry.category} was not recorded: "
                f"ledger did not answer within {self.append_timeout}s"
            )
        except Exception as exc:
            warning = (
                f"Transaction for {entry.description or entry.category} was not recorded: {exc}"
            )

        logger.warning("%s", warning, exc_info=True)
        return None, warning

    async def get(self, entry_id: str) -> LedgerEntry:
        entry = await self.repo.get(entry_id)
        if entry is None:
            raise LedgerEntryNotFound(entry_id)
        return entry

    async def query(self, ledger_filter: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        """Entries matching the filter in insertion order, without dedup."""
        return await self.repo.list_all(ledger_filter)

    async def list_by_obligation(self, ref: ObligationRef) -> List[LedgerEntry]:
        return await self.repo.list_by_obligation(ref)

    async def count_by_obligation(self, ref: ObligationRef) -> int:
        return await self.repo.count_by_obligation(ref)
