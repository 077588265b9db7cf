"""HTTP adapter for the Gemini ``generateContent`` endpoint.

Implements both collaborator protocols (classification and document
extraction). It returns the model's raw text; parsing and validation belong
to the services that call it.
"""

from __future__ import annotations

import base64
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import httpx

from rental_tax_ledger.domain.records import Property
from rental_tax_ledger.domain.value_objects import Category
from rental_tax_ledger.exceptions import CollaboratorError
from rental_tax_ledger.logging_config import get_logger

logger = get_logger(__name__)

TEXT_MIME_TYPES = frozenset({"text/csv", "text/plain", "text/tab-separated-values"})

_CATEGORY_RULES = """Rules:
- If clearly rental income (rent payment, tenant name), use RENTAL_INC_001
- If mortgage interest payment, use MORT_INT_701
- If insurance premium, use INSUR_301
- If letting agent/property management fee, use MGMT_201
- If repairs/maintenance/tradesperson, use REPAIRS_101
- If council tax, use COUNCIL_501
- If utilities (gas, electric, water), use UTIL_401
- If legal/accountant fees, use PROF_601
- If advertising/lettings fees, use ADVERT_501
- If travel related, use TRAVEL_801
- If clearly personal spending unrelated to the properties, use PERSONAL_000
- If unclear, use UNCATEGORIZED"""

_INVOICE_PROMPT = """Extract details from this invoice/receipt.
Return ONLY valid JSON with these fields:
{
  "date": "YYYY-MM-DD format",
  "vendor": "supplier/vendor name",
  "amount": numeric_total_amount,
  "description": "brief description of goods/services"
}"""

_STATEMENT_FORMAT = """Return ONLY a valid JSON object with a "transactions" array.
Each transaction should have: date (YYYY-MM-DD), description (string), amount (number - negative for expenses/debits/withdrawals, positive for income/credits/deposits).

Response format:
{
  "transactions": [
    {"date": "2024-01-15", "description": "RENT FROM TENANT", "amount": 1200.00},
    {"date": "2024-01-16", "description": "BRITISH GAS", "amount": -85.50}
  ]
}"""


def build_classification_prompt(
    description: str, amount: Decimal, properties: Sequence[Property]
) -> str:
    direction = (
        "This is a credit (income)." if amount > 0 else "This is a debit (expense)."
    )
    if properties:
        listing = "\n".join(
            f'- ID: {p.id}, Name: "{p.name}", Keywords: "{", ".join(p.keywords)}", '
            f'Address: "{p.address}"'
            for p in properties
        )
        property_context = (
            "Here are the user's properties. Try to match the transaction "
            "description to a property based on Name, Address, or Keywords.\n"
            f"{listing}\n"
            "If the description contains any tenant name, address part, or keyword "
            "associated with a property, assign its ID."
        )
    else:
        property_context = "No properties defined yet."

    categories = ", ".join(f"{c.value}: {c.label}" for c in Category)
    return f"""Act as a UK Property Tax Assistant.
Analyze this bank transaction description: "{description}".
{direction}

{property_context}

Map it to exactly one of the following HMRC categories:
{categories}.

{_CATEGORY_RULES}

Respond ONLY with valid JSON in this exact format:
{{
  "category": "HMRC_CATEGORY_CODE",
  "propertyId": "property_id_or_empty_string",
  "confidence": 0.0_to_1.0,
  "reasoning": "brief explanation"
}}"""


def _inline_part(payload: bytes, mime_type: str) -> dict[str, Any]:
    return {
        "inline_data": {
            "mime_type": mime_type,
            "data": base64.b64encode(payload).decode("ascii"),
        }
    }


class GeminiClient:
    """Async client for one Gemini model.

    Attributes:
        model: Model name, e.g. ``gemini-2.0-flash``
        base_url: API root up to and including the version segment
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(self, parts: list[dict[str, Any]]) -> str:
        """Send one ``generateContent`` request and return the first candidate text.

        Raises:
            CollaboratorError: Transport failure, non-2xx status or a reply
                without text
        """
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": parts}]}
        try:
            r = await self._client.post(url, params={"key": self._api_key}, json=body)
        except httpx.HTTPError as e:
            raise CollaboratorError(
                f"Gemini request failed: {e}", context={"model": self.model}
            ) from e

        if not 200 <= r.status_code < 300:
            detail = r.text[:200]
            logger.warning("gemini_http_error", status_code=r.status_code, detail=detail)
            raise CollaboratorError(
                f"Gemini returned HTTP {r.status_code}",
                context={"model": self.model, "status_code": r.status_code},
            )

        try:
            data = r.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CollaboratorError(
                "Gemini reply carried no text", context={"model": self.model}
            ) from e
        if not isinstance(text, str):
            raise CollaboratorError(
                "Gemini reply carried no text", context={"model": self.model}
            )
        return text

    async def classify(
        self, description: str, amount: Decimal, properties: Sequence[Property]
    ) -> str:
        prompt = build_classification_prompt(description, amount, properties)
        return await self.generate([{"text": prompt}])

    async def extract_invoice(self, payload: bytes, mime_type: str) -> str:
        return await self.generate([{"text": _INVOICE_PROMPT}, _inline_part(payload, mime_type)])

    async def extract_statement(self, payload: bytes, mime_type: str) -> str:
        if mime_type in TEXT_MIME_TYPES:
            data = payload.decode("utf-8", errors="replace")
            prompt = (
                "Extract bank transactions from this data.\n"
                f"{_STATEMENT_FORMAT}\n\nDATA:\n{data}"
            )
            return await self.generate([{"text": prompt}])
        prompt = (
            "Extract all transaction rows from this bank statement document.\n"
            f"{_STATEMENT_FORMAT}"
        )
        return await self.generate([{"text": prompt}, _inline_part(payload, mime_type)])
