"""Async client for the admin import, job store and media endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from admin_console.core.config import settings
from admin_console.core.errors import ApiError, ResponseFormatError, TransportError
from admin_console.core.middleware import build_event_hooks
from admin_console.imports.schemas import (
    INTENT_FILTER_ALL,
    ClassificationPage,
    ImportJob,
    ImportType,
    JobAction,
    JobCreated,
    JobList,
    MediaOption,
    SelectedFile,
    ValidationResult,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

IMPORT_PREFIX = "/api/admin/import"
MEDIA_PATH = "/api/media"


class ImportApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` speaking the ``{success, data, error}`` envelope.

    Every method either returns a parsed model or raises one of
    ``ApiError``, ``TransportError`` or ``ResponseFormatError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        token = settings.api_token if token is None else token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
            event_hooks=build_event_hooks(),
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "ImportApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # File validation / job creation
    # ------------------------------------------------------------------

    async def validate_file(
        self, file: SelectedFile, import_type: ImportType | str
    ) -> ValidationResult:
        """Upload a file for parsing and return its preview.

        Args:
            file: The CSV to validate
            import_type: Source format of the CSV

        Returns:
            Preview rows, total row count and detected columns
        """
        data = await self._send(
            "POST",
            f"{IMPORT_PREFIX}/validate",
            files={"file": file.as_upload()},
            data={"type": ImportType(import_type).value},
        )
        return self._parse(ValidationResult, data, f"{IMPORT_PREFIX}/validate")

    async def start_import(
        self,
        file: SelectedFile,
        import_type: ImportType | str,
        media_id: Optional[str] = None,
    ) -> JobCreated:
        """Create a remote import job from a file."""
        form = {"type": ImportType(import_type).value}
        if media_id:
            form["media_id"] = media_id

        data = await self._send(
            "POST",
            f"{IMPORT_PREFIX}/start",
            files={"file": file.as_upload()},
            data=form,
        )
        created = self._parse(JobCreated, data, f"{IMPORT_PREFIX}/start")
        logger.info(
            f"Import job created: {created.job_id}",
            extra={"job_id": created.job_id, "file_name": file.name},
        )
        return created

    # ------------------------------------------------------------------
    # Job store
    # ------------------------------------------------------------------

    async def list_jobs(
        self,
        limit: int | None = None,
        status: str | None = None,
        offset: int | None = None,
    ) -> JobList:
        """Fetch the most recent jobs, newest first."""
        params: dict[str, Any] = {"limit": limit or settings.job_list_limit}
        if status:
            params["status"] = status
        if offset:
            params["offset"] = offset

        data = await self._send("GET", f"{IMPORT_PREFIX}/jobs", params=params)
        return self._parse(JobList, data, f"{IMPORT_PREFIX}/jobs")

    async def get_job(self, job_id: str) -> ImportJob:
        path = f"{IMPORT_PREFIX}/jobs/{job_id}"
        data = await self._send("GET", path)
        return self._parse(ImportJob, data, path)

    async def job_action(self, job_id: str, action: JobAction | str) -> Optional[ImportJob]:
        """Request a cancel or retry.

        Any 2xx is a success. The updated job is returned when the body
        carries one, otherwise None.
        """
        path = f"{IMPORT_PREFIX}/jobs/{job_id}"
        response = await self._request(
            "POST", path, json={"action": JobAction(action).value}
        )
        if not response.is_success:
            self._raise_for_envelope(response, path)

        try:
            body = response.json()
        except ValueError:
            return None
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            return None
        try:
            return ImportJob.model_validate(data)
        except ValidationError:
            logger.debug(f"Job action response for {job_id} carried no job snapshot")
            return None

    async def cancel_job(self, job_id: str) -> Optional[ImportJob]:
        return await self.job_action(job_id, JobAction.CANCEL)

    async def retry_job(self, job_id: str) -> Optional[ImportJob]:
        return await self.job_action(job_id, JobAction.RETRY)

    async def classification_preview(
        self, job_id: str, intent: str | None = None
    ) -> ClassificationPage:
        """Fetch classified keywords for a job, optionally filtered by intent."""
        path = f"{IMPORT_PREFIX}/jobs/{job_id}/preview"
        params = {}
        if intent and intent != INTENT_FILTER_ALL:
            params["intent"] = intent
        data = await self._send("GET", path, params=params)
        return self._parse(ClassificationPage, data, path)

    # ------------------------------------------------------------------
    # Media directory
    # ------------------------------------------------------------------

    async def list_media(self) -> list[MediaOption]:
        data = await self._send("GET", MEDIA_PATH)
        if not isinstance(data, list):
            raise ResponseFormatError(
                "Expected a list of media", errors=[{"path": MEDIA_PATH}]
            )
        try:
            return [MediaOption.model_validate(item) for item in data]
        except ValidationError as e:
            raise ResponseFormatError(errors=e.errors()) from e

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(
                f"{method} {path} failed: {type(e).__name__}: {e}",
                extra={"path": path},
            )
            raise TransportError(str(e) or type(e).__name__, path=path) from e

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and unwrap the ``data`` member of the envelope."""
        response = await self._request(method, path, **kwargs)

        if not response.is_success:
            self._raise_for_envelope(response, path)

        try:
            body = response.json()
        except ValueError as e:
            raise ResponseFormatError(
                "Response body is not JSON", status_code=response.status_code
            ) from e

        if not isinstance(body, dict) or "success" not in body:
            raise ResponseFormatError(
                "Response is missing the success flag", status_code=response.status_code
            )
        if not body["success"]:
            self._raise_for_envelope(response, path, body)
        if "data" not in body:
            raise ResponseFormatError(
                "Response is missing data", status_code=response.status_code
            )
        return body["data"]

    @staticmethod
    def _raise_for_envelope(
        response: httpx.Response, path: str, body: Any = None
    ) -> None:
        """Raise ``ApiError`` carrying the backend's message when it sent one."""
        if body is None:
            try:
                body = response.json()
            except ValueError:
                body = None

        message = None
        code = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
            code = body["error"].get("code")

        raise ApiError(message, status_code=response.status_code, code=code, path=path)

    @staticmethod
    def _parse(model: Type[ModelT], data: Any, path: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(
                f"Unexpected payload from {path}: {e.error_count()} error(s)",
                extra={"path": path},
            )
            raise ResponseFormatError(errors=e.errors()) from e
