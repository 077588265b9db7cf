"""In-memory record store, used by tests and embedders."""

from rental_tax_ledger.domain.records import LedgerSnapshot
from rental_tax_ledger.repositories.interfaces import RecordStore


class InMemoryRecordStore(RecordStore):
    def __init__(self, snapshot: LedgerSnapshot | None = None) -> None:
        self._snapshot = snapshot.copy() if snapshot else LedgerSnapshot()
        self.write_count = 0

    def load_snapshot(self) -> LedgerSnapshot:
        return self._snapshot.copy()

    def replace_snapshot(self, snapshot: LedgerSnapshot) -> None:
        self._snapshot = snapshot.copy()
        self.write_count += 1
