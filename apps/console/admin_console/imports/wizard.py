"""Import wizard step machine.

Steps run file select (1) → configure (2) → preview (3) → execute (4).
Remote calls happen only on 2→3 (validate) and 3→4 (submit); a failed call
leaves the step unchanged and records the message on ``WizardState.error``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from admin_console.core.config import settings
from admin_console.core.errors import (
    GENERIC_ERROR_MESSAGE,
    ApiError,
    ConsoleError,
    InvalidTransitionError,
    record_error,
    user_message,
)
from admin_console.core.metrics import emit_wizard_transition
from admin_console.imports.client import ImportApiClient
from admin_console.imports.schemas import (
    DetectedMedia,
    ImportType,
    JobStatus,
    MediaOption,
    PreviewRow,
    SelectedFile,
    TERMINAL_STATUSES,
)
from admin_console.imports.validators import (
    validate_file_selected,
    validate_import_type,
    validate_media_id,
    validate_upload,
)

logger = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "インポートに失敗しました"
VALIDATE_FAILED_MESSAGE = GENERIC_ERROR_MESSAGE


class WizardStep(IntEnum):
    FILE_SELECT = 1
    CONFIGURE = 2
    PREVIEW = 3
    EXECUTE = 4


@dataclass
class WizardState:
    """Local wizard state. Only ``ImportWizard`` mutates it."""

    current_step: WizardStep = WizardStep.FILE_SELECT
    selected_file: Optional[SelectedFile] = None
    import_type: ImportType = ImportType.RAKKO_KEYWORDS
    media_id: str = ""
    preview_rows: list[PreviewRow] = field(default_factory=list)
    total_rows: int = 0
    detected_columns: list[str] = field(default_factory=list)
    detected_media: Optional[DetectedMedia] = None
    detected_domain: Optional[str] = None
    active_job_id: Optional[str] = None
    error: Optional[str] = None
    field_errors: dict[str, str] = field(default_factory=dict)
    is_loading: bool = False

    @property
    def has_preview(self) -> bool:
        return bool(self.detected_columns) or self.total_rows > 0

    def clear_preview(self) -> None:
        self.preview_rows = []
        self.total_rows = 0
        self.detected_columns = []
        self.detected_media = None
        self.detected_domain = None


class ImportWizard:
    """Drives the four-step import flow against ``ImportApiClient``.

    Network failures never raise out of ``next``; they land on
    ``state.error``. Calling an operation from a step that does not allow
    it raises ``InvalidTransitionError``.
    """

    def __init__(self, client: ImportApiClient, max_upload_bytes: int | None = None):
        self.client = client
        self.state = WizardState()
        self.media_options: list[MediaOption] = []
        self.max_upload_bytes = max_upload_bytes
        # Bumped on every local edit; a response landing after an edit is stale
        self._generation = 0

    @property
    def step(self) -> WizardStep:
        return self.state.current_step

    async def load_media_options(self) -> list[MediaOption]:
        """Fetch the selectable media. Failures leave the list empty."""
        try:
            self.media_options = await self.client.list_media()
        except ConsoleError as e:
            record_error(e, "load_media_options")
            self.media_options = []
        return self.media_options

    def select_file(self, file: Optional[SelectedFile]) -> bool:
        """Replace the selected file and drop any preview built from the old one.

        Returns:
            True when the file was accepted
        """
        self._require_step("select_file", WizardStep.FILE_SELECT, WizardStep.CONFIGURE)
        self._touch()
        self.state.clear_preview()
        self.state.error = None
        self.state.field_errors.pop("file", None)

        error = validate_upload(file, self.max_upload_bytes)
        if error:
            self.state.selected_file = None
            self.state.field_errors["file"] = error
            logger.info(f"File rejected: {error}")
            return False

        self.state.selected_file = file
        return True

    def configure(
        self,
        import_type: ImportType | str | None = None,
        media_id: str | None = None,
    ) -> None:
        """Set the import type and/or target media. Clears the preview.

        An unknown import type is recorded on ``field_errors`` and the
        previous type kept; the media id is still applied.
        """
        self._require_step("configure", WizardStep.FILE_SELECT, WizardStep.CONFIGURE)

        if import_type is not None:
            error = validate_import_type(import_type)
            if error:
                self.state.field_errors["import_type"] = error
            else:
                self.state.import_type = ImportType(import_type)
                self.state.field_errors.pop("import_type", None)

        if media_id is not None:
            self.state.media_id = media_id.strip()
            if self.state.media_id:
                self.state.field_errors.pop("media_id", None)

        self._touch()
        self.state.clear_preview()

    async def next(self) -> WizardStep:
        """Advance one step, calling the backend where the step requires it."""
        step = self.state.current_step
        if step == WizardStep.FILE_SELECT:
            error = validate_file_selected(self.state.selected_file)
            if error:
                self.state.field_errors["file"] = error
                return step
            self._go(WizardStep.CONFIGURE)
        elif step == WizardStep.CONFIGURE:
            await self._validate()
        elif step == WizardStep.PREVIEW:
            await self._submit()
        else:
            raise InvalidTransitionError("next", int(step), "Execute step only supports reset")
        return self.state.current_step

    def prev(self) -> WizardStep:
        self._require_step("prev", WizardStep.CONFIGURE, WizardStep.PREVIEW)
        self._touch()
        self.state.error = None
        self._go(WizardStep(self.state.current_step - 1))
        return self.state.current_step

    def reset(self, job_status: JobStatus | None = None, force: bool = False) -> None:
        """Return to step 1 and clear every field.

        From the execute step this requires the active job to be terminal,
        unless ``force`` is set.
        """
        if (
            self.state.current_step == WizardStep.EXECUTE
            and not force
            and (job_status is None or JobStatus(job_status) not in TERMINAL_STATUSES)
        ):
            raise InvalidTransitionError(
                "reset",
                int(self.state.current_step),
                "Job is still running; pass force=True to leave it",
            )

        previous = self.state.current_step
        self._touch()
        self.state = WizardState()
        if previous != WizardStep.FILE_SELECT:
            emit_wizard_transition(int(previous), int(WizardStep.FILE_SELECT))

    async def _validate(self) -> None:
        state = self.state
        if not self._ready_to_send():
            return

        generation = self._begin_call()
        try:
            result = await self.client.validate_file(state.selected_file, state.import_type)
        except ConsoleError as e:
            if self._is_current(generation):
                self._fail(e, "validate", VALIDATE_FAILED_MESSAGE)
            return
        finally:
            state.is_loading = False

        if not self._is_current(generation):
            logger.debug("Discarding validation result for a replaced selection")
            return

        state.preview_rows = result.preview_rows[: settings.preview_row_limit]
        state.total_rows = result.total_rows
        state.detected_columns = result.columns
        state.detected_media = result.detected_media
        state.detected_domain = result.detected_domain
        self._go(WizardStep.PREVIEW)

    async def _submit(self) -> None:
        state = self.state
        if not self._ready_to_send():
            return

        generation = self._begin_call()
        try:
            created = await self.client.start_import(
                state.selected_file, state.import_type, state.media_id
            )
        except ConsoleError as e:
            if self._is_current(generation):
                self._fail(e, "start_import", SUBMIT_FAILED_MESSAGE)
            return
        finally:
            state.is_loading = False

        if not self._is_current(generation):
            logger.warning(
                f"Import job {created.job_id} was created after the wizard moved on",
                extra={"job_id": created.job_id},
            )
            return

        state.active_job_id = created.job_id
        self._go(WizardStep.EXECUTE)

    def _ready_to_send(self) -> bool:
        """Check the file and media gates before any upload."""
        errors = {
            "file": validate_file_selected(self.state.selected_file),
            "media_id": validate_media_id(self.state.media_id),
        }
        for name, error in errors.items():
            if error:
                self.state.field_errors[name] = error
        return not any(errors.values())

    def _begin_call(self) -> int:
        self.state.is_loading = True
        self.state.error = None
        self.state.field_errors.clear()
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _fail(self, error: ConsoleError, context: str, fallback: str) -> None:
        record_error(error, context)
        if isinstance(error, ApiError):
            self.state.error = user_message(error, fallback)
        else:
            self.state.error = user_message(error)

    def _go(self, to_step: WizardStep) -> None:
        from_step = self.state.current_step
        self.state.current_step = to_step
        logger.info(f"Import wizard step {int(from_step)} -> {int(to_step)}")
        emit_wizard_transition(int(from_step), int(to_step))

    def _touch(self) -> None:
        self._generation += 1

    def _require_step(self, operation: str, *allowed: WizardStep) -> None:
        if self.state.current_step not in allowed:
            raise InvalidTransitionError(operation, int(self.state.current_step))
