"""SQLite implementation of the record store."""

from __future__ import annotations

import json
import sqlite3
from decimal import Decimal
from pathlib import Path

from rental_tax_ledger.domain.records import (
    Invoice,
    LedgerSnapshot,
    Property,
    Transaction,
)
from rental_tax_ledger.exceptions import StoreError
from rental_tax_ledger.logging_config import get_logger
from rental_tax_ledger.repositories.interfaces import RecordStore

logger = get_logger(__name__)


class SQLiteDatabase:
    """SQLite database connection manager."""

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = True
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(
                self._path, check_same_thread=self._check_same_thread
            )
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        conn.executescript(
            """
            -- Properties table
            CREATE TABLE IF NOT EXISTS properties (
                position INTEGER NOT NULL,
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                address TEXT NOT NULL DEFAULT '',
                keywords TEXT NOT NULL DEFAULT '[]'
            );

            -- Transactions table (amounts as decimal text)
            CREATE TABLE IF NOT EXISTS transactions (
                position INTEGER NOT NULL,
                id TEXT PRIMARY KEY,
                date TEXT NOT NULL,
                description TEXT NOT NULL,
                amount TEXT NOT NULL,
                property_id TEXT,
                category TEXT NOT NULL,
                status TEXT NOT NULL,
                origin TEXT NOT NULL,
                matched_invoice_id TEXT,
                tag TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);

            -- Invoices table
            CREATE TABLE IF NOT EXISTS invoices (
                position INTEGER NOT NULL,
                id TEXT PRIMARY KEY,
                date TEXT NOT NULL,
                vendor TEXT NOT NULL,
                amount TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL,
                document TEXT,
                document_mime_type TEXT,
                matched_transaction_id TEXT
            );
            """
        )
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLiteRecordStore(RecordStore):
    """Stores the ledger in three tables; every replace is one SQLite transaction."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database
        self._db.initialize()

    def load_snapshot(self) -> LedgerSnapshot:
        conn = self._db.get_connection()
        try:
            properties = [
                self._row_to_property(row)
                for row in conn.execute("SELECT * FROM properties ORDER BY position")
            ]
            transactions = [
                self._row_to_transaction(row)
                for row in conn.execute("SELECT * FROM transactions ORDER BY position")
            ]
            invoices = [
                self._row_to_invoice(row)
                for row in conn.execute("SELECT * FROM invoices ORDER BY position")
            ]
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load ledger: {e}") from e
        return LedgerSnapshot(
            transactions=transactions, invoices=invoices, properties=properties
        )

    def replace_snapshot(self, snapshot: LedgerSnapshot) -> None:
        conn = self._db.get_connection()
        try:
            with conn:
                conn.execute("DELETE FROM properties")
                conn.execute("DELETE FROM transactions")
                conn.execute("DELETE FROM invoices")
                conn.executemany(
                    "INSERT INTO properties (position, id, name, address, keywords) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [
                        (pos, p.id, p.name, p.address, json.dumps(p.keywords))
                        for pos, p in enumerate(snapshot.properties)
                    ],
                )
                conn.executemany(
                    """
                    INSERT INTO transactions (position, id, date, description, amount,
                                              property_id, category, status, origin,
                                              matched_invoice_id, tag)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            pos,
                            t.id,
                            t.date.isoformat(),
                            t.description,
                            str(t.amount),
                            t.property_id,
                            t.category.value,
                            t.status.value,
                            t.origin.value,
                            t.matched_invoice_id,
                            t.tag.value if t.tag else None,
                        )
                        for pos, t in enumerate(snapshot.transactions)
                    ],
                )
                conn.executemany(
                    """
                    INSERT INTO invoices (position, id, date, vendor, amount, description,
                                          status, document, document_mime_type,
                                          matched_transaction_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            pos,
                            i.id,
                            i.date.isoformat(),
                            i.vendor,
                            str(i.amount),
                            i.description,
                            i.status.value,
                            i.document,
                            i.document_mime_type,
                            i.matched_transaction_id,
                        )
                        for pos, i in enumerate(snapshot.invoices)
                    ],
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write ledger: {e}") from e
        logger.debug(
            "ledger_written",
            path=self._db.path,
            transactions=len(snapshot.transactions),
            invoices=len(snapshot.invoices),
            properties=len(snapshot.properties),
        )

    def close(self) -> None:
        self._db.close()

    def _row_to_property(self, row: sqlite3.Row) -> Property:
        return Property(
            id=row["id"],
            name=row["name"],
            address=row["address"],
            keywords=json.loads(row["keywords"] or "[]"),
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            date=row["date"],
            description=row["description"],
            amount=Decimal(row["amount"]),
            property_id=row["property_id"],
            category=row["category"],
            status=row["status"],
            origin=row["origin"],
            matched_invoice_id=row["matched_invoice_id"],
            tag=row["tag"],
        )

    def _row_to_invoice(self, row: sqlite3.Row) -> Invoice:
        return Invoice(
            id=row["id"],
            date=row["date"],
            vendor=row["vendor"],
            amount=Decimal(row["amount"]),
            description=row["description"],
            status=row["status"],
            document=row["document"],
            document_mime_type=row["document_mime_type"],
            matched_transaction_id=row["matched_transaction_id"],
        )
