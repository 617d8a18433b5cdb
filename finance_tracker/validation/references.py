"""
Referential Integrity Checker

Schema validation only proves that category and payment_source look like
UUIDs. This stage asks the store whether those rows exist AND are owned by
the caller.

CRITICAL: This check is mandatory on every create and update. A well-formed
UUID of someone else's category must be rejected here, before any write.
"""

import asyncio

from finance_tracker.models.transaction import ReferenceCheck
from finance_tracker.services.storage.interface import CatalogStorageInterface


class ReferentialIntegrityChecker:
    """Confirms that referenced catalog rows are visible to the user."""

    def __init__(self, catalog: CatalogStorageInterface):
        self._catalog = catalog

    async def verify_owned(
        self,
        user_id: str,
        category_id: str,
        payment_source_id: str,
    ) -> ReferenceCheck:
        """
        Look up both references concurrently.

        Raises:
            StorageError: If the store cannot answer. The caller turns
                this into an upstream failure - a lookup that errored is
                never treated as "valid".
        """
        category, payment_source = await asyncio.gather(
            self._catalog.get_category(user_id, category_id),
            self._catalog.get_payment_source(user_id, payment_source_id),
        )

        return ReferenceCheck(
            category_valid=category is not None,
            payment_source_valid=payment_source is not None,
        )
