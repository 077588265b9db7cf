"""Dependency injection container for Rental Tax Ledger.

Builds the record store, the external collaborator client and the services
from settings, lazily and once per container.

Usage:
    from rental_tax_ledger.container import get_container

    container = get_container()
    estimate = container.tax_service.estimate("2025-2026")
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING

from rental_tax_ledger.config import Settings, get_settings
from rental_tax_ledger.logging_config import get_logger

if TYPE_CHECKING:
    from rental_tax_ledger.clients.gemini import GeminiClient
    from rental_tax_ledger.repositories.interfaces import RecordStore
    from rental_tax_ledger.services.categorization import CategorizationOrchestrator
    from rental_tax_ledger.services.ingestion import IngestionService
    from rental_tax_ledger.services.reconciliation import ReconciliationService
    from rental_tax_ledger.services.reporting import ReportingService
    from rental_tax_ledger.services.tax_estimation import TaxEstimationService

logger = get_logger(__name__)


class Container:
    """Lazily built application services.

    Tests can inject a store directly:

        container = Container(settings=Settings(), store=InMemoryRecordStore())
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: "RecordStore | None" = None,
    ) -> None:
        self._settings = settings or get_settings()
        if store is not None:
            self.__dict__["store"] = store
        logger.debug(
            "container_created",
            environment=self._settings.environment.value,
            store_injected=store is not None,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def store(self) -> "RecordStore":
        """SQLite-backed record store at ``settings.sqlite_path``."""
        from rental_tax_ledger.repositories.sqlite import (
            SQLiteDatabase,
            SQLiteRecordStore,
        )

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_store", path=db_path)
        return SQLiteRecordStore(SQLiteDatabase(db_path, check_same_thread=False))

    @cached_property
    def gemini_client(self) -> "GeminiClient | None":
        """Collaborator client, or None when no API key is configured."""
        if not self._settings.gemini_api_key:
            logger.info("collaborator_not_configured", setting="RTL_GEMINI_API_KEY")
            return None
        from rental_tax_ledger.clients.gemini import GeminiClient

        return GeminiClient(
            api_key=self._settings.gemini_api_key,
            model=self._settings.gemini_model,
            base_url=self._settings.gemini_base_url,
            timeout=self._settings.collaborator_timeout,
        )

    @cached_property
    def orchestrator(self) -> "CategorizationOrchestrator":
        from rental_tax_ledger.services.categorization import (
            CategorizationOrchestrator,
        )

        return CategorizationOrchestrator(
            self.gemini_client, concurrency=self._settings.classification_concurrency
        )

    @cached_property
    def reconciliation_service(self) -> "ReconciliationService":
        from rental_tax_ledger.services.reconciliation import ReconciliationService

        return ReconciliationService(
            self.store,
            tolerance=self._settings.match_amount_tolerance,
            window_days=self._settings.match_window_days,
        )

    @cached_property
    def ingestion_service(self) -> "IngestionService":
        from rental_tax_ledger.services.ingestion import IngestionService

        return IngestionService(
            self.orchestrator, self.reconciliation_service, self.gemini_client
        )

    @cached_property
    def tax_service(self) -> "TaxEstimationService":
        from rental_tax_ledger.services.tax_estimation import TaxEstimationService

        return TaxEstimationService(self.store)

    @cached_property
    def reporting_service(self) -> "ReportingService":
        from rental_tax_ledger.services.reporting import ReportingService

        return ReportingService(self.store)

    def close(self) -> None:
        """Close the record store if it was opened."""
        store = self.__dict__.get("store")
        if store is not None:
            logger.info("closing_record_store")
            store.close()

    async def aclose(self) -> None:
        """Close the store and the collaborator HTTP client."""
        client = self.__dict__.get("gemini_client")
        if client is not None:
            await client.aclose()
        self.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


_container: Container | None = None


@lru_cache
def get_container() -> Container:
    """Get the global container singleton."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Drop the global container. Used by tests."""
    global _container
    if _container is not None:
        _container.close()
        _container = None
    get_container.cache_clear()


# FastAPI dependency functions
def get_reconciliation_service() -> "ReconciliationService":
    return get_container().reconciliation_service


def get_ingestion_service() -> "IngestionService":
    return get_container().ingestion_service


def get_tax_service() -> "TaxEstimationService":
    return get_container().tax_service


def get_reporting_service() -> "ReportingService":
    return get_container().reporting_service
