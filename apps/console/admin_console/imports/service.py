"""Import job controller: wizard, job polling, actions and preview in one place."""

from __future__ import annotations

import logging
from typing import Any, Optional

from admin_console.core.config import settings
from admin_console.core.errors import ConsoleError, record_error
from admin_console.core.metrics import emit_job_action
from admin_console.imports.client import ImportApiClient
from admin_console.imports.polling import JobPoller
from admin_console.imports.preview import ClassificationPreview
from admin_console.imports.schemas import (
    ImportJob,
    ImportType,
    JobAction,
    SelectedFile,
)
from admin_console.imports.wizard import ImportWizard, WizardState, WizardStep

logger = logging.getLogger(__name__)


class ImportController:
    """Owns one import session.

    The wizard, the poller and the preview share a single API client. A
    successful submission is reconciled twice (immediately and after
    ``reconcile_delay`` seconds); a successful cancel/retry once.

    Usage::

        async with ImportController() as controller:
            controller.select_file(SelectedFile.from_path("orders.csv"))
            await controller.next()
    """

    def __init__(
        self,
        client: ImportApiClient | None = None,
        poller: JobPoller | None = None,
        reconcile_delay: float | None = None,
    ):
        self._owns_client = client is None
        self.client = client or ImportApiClient()
        self.wizard = ImportWizard(self.client)
        self.poller = poller or JobPoller(self.client)
        self.preview = ClassificationPreview(self.client)
        self.reconcile_delay = (
            reconcile_delay if reconcile_delay is not None
            else settings.reconcile_delay_seconds
        )
        self.last_action_error: Optional[ConsoleError] = None

    async def __aenter__(self) -> "ImportController":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Load media options and begin polling."""
        await self.wizard.load_media_options()
        await self.poller.start()

    async def close(self) -> None:
        """Stop polling and release the client if this controller created it."""
        self.poller.stop()
        if self._owns_client:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Wizard
    # ------------------------------------------------------------------

    @property
    def state(self) -> WizardState:
        return self.wizard.state

    @property
    def active_job(self) -> Optional[ImportJob]:
        """Live snapshot of the job the wizard submitted, once seen."""
        if self.state.active_job_id is None:
            return None
        job = self.poller.current_job
        if job is not None and job.id == self.state.active_job_id:
            return job
        return None

    def select_file(self, file: Optional[SelectedFile]) -> bool:
        return self.wizard.select_file(file)

    def configure(
        self,
        import_type: ImportType | str | None = None,
        media_id: str | None = None,
    ) -> None:
        self.wizard.configure(import_type=import_type, media_id=media_id)

    async def next(self) -> WizardStep:
        before = self.wizard.step
        after = await self.wizard.next()
        if before == WizardStep.PREVIEW and after == WizardStep.EXECUTE:
            await self._reconcile_submission(self.state.active_job_id)
        return after

    def prev(self) -> WizardStep:
        return self.wizard.prev()

    def reset(self, force: bool = False) -> None:
        """Start a new import. From step 4 the job must be terminal unless forced."""
        job = self.active_job
        self.wizard.reset(job_status=job.status if job else None, force=force)
        self.poller.track(None)

    async def _reconcile_submission(self, job_id: Optional[str]) -> None:
        self.poller.track(job_id)
        await self.poller.refresh()
        self.poller.schedule_refresh(self.reconcile_delay)

    # ------------------------------------------------------------------
    # Job actions
    # ------------------------------------------------------------------

    async def cancel(self, job_id: str) -> bool:
        return await self._act(job_id, JobAction.CANCEL)

    async def retry(self, job_id: str) -> bool:
        return await self._act(job_id, JobAction.RETRY)

    async def _act(self, job_id: str, action: JobAction) -> bool:
        """Send an action. The request goes out regardless of the job's status.

        Returns:
            True when the backend answered 2xx
        """
        try:
            await self.client.job_action(job_id, action)
        except ConsoleError as e:
            record_error(e, f"job_{action.value}")
            emit_job_action(action.value, success=False, job_id=job_id)
            self.last_action_error = e
            return False

        logger.info(f"Job {job_id}: {action.value} accepted", extra={"job_id": job_id})
        emit_job_action(action.value, success=True, job_id=job_id)
        self.last_action_error = None
        await self.poller.refresh()
        return True

    # ------------------------------------------------------------------
    # Classification preview
    # ------------------------------------------------------------------

    async def load_preview(self, job_id: str, intent: str | None = None) -> bool:
        return await self.preview.load(job_id, intent)
