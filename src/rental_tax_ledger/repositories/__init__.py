from rental_tax_ledger.repositories.interfaces import RecordStore
from rental_tax_ledger.repositories.memory import InMemoryRecordStore
from rental_tax_ledger.repositories.sqlite import SQLiteDatabase, SQLiteRecordStore

__all__ = [
    "InMemoryRecordStore",
    "RecordStore",
    "SQLiteDatabase",
    "SQLiteRecordStore",
]
