"""Categorization orchestrator.

Wraps the external classifier, which is treated as an untrusted producer of
semi-structured text. Every reply goes through the same boundary: extract a
JSON payload, validate its shape with pydantic, then check the category code
against ``Category`` and the property id against the caller's property list.
Any failure along the way degrades to an uncategorized, zero-confidence
result; this module never raises to its caller.
"""

import asyncio
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from rental_tax_ledger.domain.records import Property
from rental_tax_ledger.domain.value_objects import Category
from rental_tax_ledger.logging_config import get_logger
from rental_tax_ledger.services.interfaces import (
    CategorizationResult,
    ClassificationClient,
)
from rental_tax_ledger.services.json_extraction import extract_json_payload

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.5
# Ceiling when the classifier named a property that does not exist
DEFAULTED_PROPERTY_CONFIDENCE = 0.3


class ClassificationPayload(BaseModel):
    """Shape check for the classifier reply. Membership checks happen later."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category: str = Category.UNCATEGORIZED.value
    property_id: str | None = Field(
        default=None, validation_alias=AliasChoices("propertyId", "property_id")
    )
    confidence: float | None = None
    reasoning: str = ""

    @field_validator("category", mode="before")
    @classmethod
    def _category_text(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return Category.UNCATEGORIZED.value
        return v.strip().upper()

    @field_validator("property_id", mode="before")
    @classmethod
    def _normalize_property_id(cls, v: Any) -> str | None:
        if v is None or isinstance(v, bool):
            return None
        s = str(v).strip()
        return s or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v: Any) -> float | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        if value != value:  # NaN
            return None
        return min(1.0, max(0.0, value))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_text(cls, v: Any) -> str:
        return "" if v is None else str(v)


def match_property_by_keywords(
    description: str, properties: Sequence[Property]
) -> Property | None:
    """First property whose keyword, name or first address line is in the text."""
    text = description.lower()
    for prop in properties:
        if any(term in text for term in prop.search_terms):
            return prop
    return None


def resolve_property(
    claimed_id: str | None, description: str, properties: Sequence[Property]
) -> tuple[str | None, bool]:
    """Pick a property id for a transaction.

    Returns ``(property_id, defaulted)`` where ``defaulted`` is False only when
    the classifier's own id was valid and used.
    """
    if claimed_id is not None and any(p.id == claimed_id for p in properties):
        return claimed_id, False
    matched = match_property_by_keywords(description, properties)
    if matched is not None:
        return matched.id, True
    if properties:
        return properties[0].id, True
    return None, True


def validate_classification(
    raw: Any, description: str, properties: Sequence[Property]
) -> CategorizationResult:
    """Turn an extracted payload into a result that only references known values."""
    if not isinstance(raw, dict) or not raw:
        property_id, _ = resolve_property(None, description, properties)
        return CategorizationResult.fallback(property_id, "no usable classifier payload")

    try:
        payload = ClassificationPayload.model_validate(raw)
    except ValidationError as e:
        logger.warning("classification_payload_invalid", errors=e.error_count())
        property_id, _ = resolve_property(None, description, properties)
        return CategorizationResult.fallback(property_id, "invalid classifier payload")

    property_id, defaulted = resolve_property(payload.property_id, description, properties)
    if defaulted and payload.property_id is not None:
        logger.info(
            "classification_property_rejected",
            claimed_property_id=payload.property_id,
            property_id=property_id,
        )

    if not Category.is_known(payload.category):
        logger.info("classification_category_rejected", category=payload.category)
        return CategorizationResult(
            category=Category.UNCATEGORIZED,
            property_id=property_id,
            confidence=0.0,
            reasoning=payload.reasoning,
            property_defaulted=defaulted,
        )

    confidence = (
        DEFAULT_CONFIDENCE if payload.confidence is None else payload.confidence
    )
    if defaulted and payload.property_id is not None:
        confidence = min(confidence, DEFAULTED_PROPERTY_CONFIDENCE)
    return CategorizationResult(
        category=Category.parse(payload.category),
        property_id=property_id,
        confidence=confidence,
        reasoning=payload.reasoning,
        property_defaulted=defaulted,
    )


class CategorizationOrchestrator:
    """Issues classifier calls and validates what comes back.

    Attributes:
        client: External classifier, or None when no classifier is configured.
            Without one, every row falls back to uncategorized.
        concurrency: Default cap on simultaneous classifier calls.
    """

    def __init__(
        self, client: ClassificationClient | None = None, concurrency: int = 4
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be a positive integer")
        self.client = client
        self.concurrency = concurrency

    async def categorize(
        self,
        description: str,
        amount: Decimal,
        properties: Sequence[Property],
    ) -> CategorizationResult:
        """Classify one transaction. Never raises.

        Args:
            description: Bank description text
            amount: Signed amount, negative for expenses
            properties: Snapshot of the known properties

        Returns:
            A result whose category is a ``Category`` member and whose property
            id, if any, names one of ``properties``.
        """
        if self.client is None:
            property_id, _ = resolve_property(None, description, properties)
            return CategorizationResult.fallback(property_id, "classifier not configured")

        try:
            text = await self.client.classify(description, amount, properties)
        except Exception as e:
            logger.warning(
                "classification_failed",
                description=description,
                error=str(e),
                error_type=type(e).__name__,
            )
            property_id, _ = resolve_property(None, description, properties)
            return CategorizationResult.fallback(property_id, "classifier call failed")

        return validate_classification(extract_json_payload(text), description, properties)

    async def categorize_many(
        self,
        items: Sequence[tuple[str, Decimal]],
        properties: Sequence[Property],
        concurrency: int | None = None,
    ) -> list[CategorizationResult]:
        """Classify a batch with bounded concurrency, preserving input order.

        Each call sees the same immutable tuple of properties. A failing call
        yields its own fallback without affecting the others.
        """
        limit = concurrency or self.concurrency
        if limit < 1:
            raise ValueError("concurrency must be a positive integer")
        snapshot = tuple(properties)
        semaphore = asyncio.Semaphore(limit)

        async def _one(description: str, amount: Decimal) -> CategorizationResult:
            async with semaphore:
                return await self.categorize(description, amount, snapshot)

        results = await asyncio.gather(*(_one(d, a) for d, a in items))
        logger.info(
            "batch_categorized",
            count=len(results),
            uncategorized=sum(1 for r in results if r.category == Category.UNCATEGORIZED),
        )
        return list(results)
