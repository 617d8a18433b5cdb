"""
Receipt Reading Agent

CRITICAL BOUNDARIES:
- CAN: Read the total, date, merchant and payment hints off a receipt
- CAN: Pick the closest category and payment source from the user's list
- CANNOT: Invent catalog entries - anything not in the list is replaced
  with the user's first entry
- CANNOT: Persist anything - that is the intake pipeline's job

The model is a READER. Whatever it returns is treated as untrusted input
and goes through the same validation as a form submission.
"""

from datetime import date
from typing import Any, Sequence, Union

from finance_tracker.models.transaction import Category, PaymentSource
from finance_tracker.services.ai import DecodeResult, GeminiClient, decode_json_object
from finance_tracker.services.image import ReceiptImage


def build_receipt_prompt(
    categories: Sequence[Category],
    payment_sources: Sequence[PaymentSource],
    today: date,
) -> str:
    """Extraction prompt listing the user's own catalog by name and id."""
    categories_list = "\n".join(f"- {c.name} (ID: {c.id})" for c in categories)
    sources_list = "\n".join(f"- {s.name} (ID: {s.id})" for s in payment_sources)
    today_str = today.isoformat()

    return f"""You are a receipt scanning assistant. Analyze this receipt image and extract the following information:

1. **Total amount** (required) - The total amount paid
2. **Date** (optional) - The transaction date printed on the receipt. If not found, use today's date: {today_str}
3. **Category** (required) - Match the merchant or the items purchased to the most appropriate category from this list:
{categories_list}

4. **Payment source** (required) - If you can tell how it was paid (cash, card type, etc.), match it to the most appropriate payment source from this list:
{sources_list}
If unclear, use the first payment source in the list.

5. **Notes** (optional) - Merchant name, key items purchased, or other relevant details

IMPORTANT: Return ONLY one valid JSON object with this exact structure (no markdown, no explanations):
{{
  "amount": <number>,
  "date": "YYYY-MM-DD",
  "category": "<category_id>",
  "payment_source": "<payment_source_id>",
  "notes": "<string or null>"
}}

If you cannot extract a field, use these defaults:
- amount: 0 (the user will correct it)
- category: {categories[0].id}
- payment_source: {payment_sources[0].id}
- date: {today_str}
- notes: null"""


def _is_catalog_id(value: Any, entries: Sequence[Union[Category, PaymentSource]]) -> bool:
    # The model may answer with lists or objects
    if not isinstance(value, str):
        return False
    return value.lower() in {entry.id.lower() for entry in entries}


def coerce_extraction(
    data: dict[str, Any],
    categories: Sequence[Category],
    payment_sources: Sequence[PaymentSource],
    today: date,
) -> tuple[dict[str, Any], list[str]]:
    """
    Map a decoded reply onto a draft payload.

    Returns:
        (payload for the draft schema, names of fields that were replaced
        with a default)
    """
    substituted = []

    category = data.get("category")
    if not _is_catalog_id(category, categories):
        category = categories[0].id
        substituted.append("category")

    payment_source = data.get("payment_source")
    if not _is_catalog_id(payment_source, payment_sources):
        payment_source = payment_sources[0].id
        substituted.append("payment_source")

    amount = data.get("amount")
    # bool is an int subclass
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        amount = 0
        substituted.append("amount")

    receipt_date = data.get("date")
    if not isinstance(receipt_date, str) or not receipt_date:
        receipt_date = today.isoformat()
        substituted.append("date")

    notes = data.get("notes")
    if not isinstance(notes, str) or not notes:
        notes = None

    payload = {
        "amount": amount,
        "date": receipt_date,
        "category": category,
        "payment_source": payment_source,
        "notes": notes,
    }
    return payload, substituted


class ReceiptReader:
    """Sends one receipt image to the vision model and decodes the reply."""

    def __init__(self, client: GeminiClient):
        self._client = client

    async def read(
        self,
        image: ReceiptImage,
        categories: Sequence[Category],
        payment_sources: Sequence[PaymentSource],
        today: date,
    ) -> DecodeResult:
        """
        Raises:
            AIServiceError: If the vision call itself failed
        """
        prompt = build_receipt_prompt(categories, payment_sources, today)
        reply = await self._client.read_image(prompt, image.data, image.mime_type)
        return decode_json_object(reply)
