from abc import ABC, abstractmethod

from rental_tax_ledger.domain.records import (
    Invoice,
    LedgerSnapshot,
    Property,
    Transaction,
)


class RecordStore(ABC):
    """Whole-collection persistence: load everything, replace everything.

    Implementations must apply ``replace_snapshot`` all-or-nothing and must
    hand out copies, so callers can mutate a loaded snapshot freely until they
    write it back.
    """

    @abstractmethod
    def load_snapshot(self) -> LedgerSnapshot:
        pass

    @abstractmethod
    def replace_snapshot(self, snapshot: LedgerSnapshot) -> None:
        pass

    def load_transactions(self) -> list[Transaction]:
        return self.load_snapshot().transactions

    def load_invoices(self) -> list[Invoice]:
        return self.load_snapshot().invoices

    def load_properties(self) -> list[Property]:
        return self.load_snapshot().properties

    def replace_transactions(self, transactions: list[Transaction]) -> None:
        snapshot = self.load_snapshot()
        snapshot.transactions = list(transactions)
        self.replace_snapshot(snapshot)

    def replace_invoices(self, invoices: list[Invoice]) -> None:
        snapshot = self.load_snapshot()
        snapshot.invoices = list(invoices)
        self.replace_snapshot(snapshot)

    def replace_properties(self, properties: list[Property]) -> None:
        snapshot = self.load_snapshot()
        snapshot.properties = list(properties)
        self.replace_snapshot(snapshot)

    def close(self) -> None:  # noqa: B027
        pass
