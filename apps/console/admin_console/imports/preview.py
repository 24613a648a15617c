"""Classification preview for a completed job."""

from __future__ import annotations

import logging
from typing import Optional

from admin_console.core.errors import ConsoleError, PreconditionError, record_error
from admin_console.imports.client import ImportApiClient
from admin_console.imports.schemas import INTENT_FILTER_ALL, ClassificationItem
from admin_console.imports.validators import validate_intent_filter

logger = logging.getLogger(__name__)


class ClassificationPreview:
    """Read-only view of a job's classified keywords.

    Every filter change is a fresh fetch that replaces ``items`` and
    ``total``; nothing is cached between filter values. When two fetches
    overlap, the one that lands last is shown, together with its filter.
    """

    def __init__(self, client: ImportApiClient):
        self.client = client
        self.job_id: Optional[str] = None
        self.intent: str = INTENT_FILTER_ALL
        self.items: list[ClassificationItem] = []
        self.total = 0
        self.error: Optional[ConsoleError] = None

    async def load(self, job_id: str, intent: str | None = None) -> bool:
        """Fetch items for ``job_id`` filtered by ``intent`` (``all`` by default).

        Raises:
            PreconditionError: If ``intent`` is outside the known categories

        Returns:
            True when items were replaced
        """
        intent = intent or INTENT_FILTER_ALL
        error = validate_intent_filter(intent)
        if error:
            raise PreconditionError("intent", error)

        try:
            page = await self.client.classification_preview(job_id, intent)
        except ConsoleError as e:
            record_error(e, "classification_preview")
            self.error = e
            return False

        self.job_id = job_id
        self.intent = intent
        self.items = page.items
        self.total = page.total
        self.error = None
        logger.debug(f"Loaded {len(page.items)} of {page.total} classified keywords ({intent})")
        return True

    async def set_filter(self, intent: str) -> bool:
        if self.job_id is None:
            raise PreconditionError("job_id", "No job loaded")
        return await self.load(self.job_id, intent)
