from __future__ import annotations

from typing import Optional

import httpx
import pytest
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse

from admin_console.core.config import settings
from admin_console.imports.client import ImportApiClient
from admin_console.imports.schemas import SelectedFile

from helpers import BASE_URL, envelope, error_envelope, job_payload, preview_rows


@pytest.fixture(autouse=True)
def quiet_metrics(monkeypatch):
    """Keep EMF lines out of test logs unless a test turns them on."""
    monkeypatch.setattr(settings, "enable_metrics", False)


@pytest.fixture
def csv_file() -> SelectedFile:
    return SelectedFile(name="orders.csv", content=b"keyword,volume\nfoo,100\n")


class FakeBackend:
    """In-memory stand-in for the admin import endpoints."""

    def __init__(self):
        self.jobs: list[dict] = []
        self.media = [
            {"id": "media-42", "name": "Example Media", "domain": "example.com"},
            {"id": "media-7", "name": "Other Media", "domain": "other.example"},
        ]
        self.next_job_id = "job-123"
        self.validate_error: Optional[dict] = None
        self.start_error: Optional[dict] = None
        self.action_status = 200
        self.classified: list[dict] = [
            {"keyword": "acme jobs", "intent": "branded", "intent_reason": "brand", "search_volume": 900},
            {"keyword": "apply nurse", "intent": "transactional", "intent_reason": "apply", "search_volume": 300},
            {"keyword": "nurse salary", "intent": "informational", "intent_reason": None, "search_volume": 150},
        ]
        self.calls: list[tuple[str, str]] = []
        self.uploads: list[dict] = []
        self.app = self._build_app()

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def _find(self, job_id: str) -> Optional[dict]:
        return next((job for job in self.jobs if job["id"] == job_id), None)

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.get("/api/media")
        async def media():
            backend.calls.append(("GET", "/api/media"))
            return envelope(backend.media)

        @app.post("/api/admin/import/validate")
        async def validate(file: UploadFile = File(...), type: str = Form(...)):
            backend.calls.append(("POST", "/api/admin/import/validate"))
            backend.uploads.append({"name": file.filename, "type": type})
            if backend.validate_error is not None:
                return JSONResponse(backend.validate_error, status_code=400)
            return envelope(
                {
                    "previewRows": preview_rows(50),
                    "totalRows": 5000,
                    "columns": ["keyword", "searchVolume", "estimatedTraffic"],
                    "detectedMedia": backend.media[0],
                    "detectedDomain": "example.com",
                }
            )

        @app.post("/api/admin/import/start")
        async def start(
            file: UploadFile = File(...),
            type: str = Form(...),
            media_id: Optional[str] = Form(None),
        ):
            backend.calls.append(("POST", "/api/admin/import/start"))
            backend.uploads.append({"name": file.filename, "type": type, "media_id": media_id})
            if backend.start_error is not None:
                return JSONResponse(backend.start_error, status_code=500)
            job = job_payload(backend.next_job_id, "pending", file_name=file.filename, media_id=media_id)
            backend.jobs.insert(0, job)
            return envelope({"jobId": job["id"], "status": "pending"})

        @app.get("/api/admin/import/jobs")
        async def list_jobs(limit: int = 10):
            backend.calls.append(("GET", "/api/admin/import/jobs"))
            return envelope({"jobs": backend.jobs[:limit], "total": len(backend.jobs)})

        @app.get("/api/admin/import/jobs/{job_id}")
        async def get_job(job_id: str):
            backend.calls.append(("GET", f"/api/admin/import/jobs/{job_id}"))
            job = backend._find(job_id)
            if job is None:
                return JSONResponse(error_envelope("ジョブが見つかりません"), status_code=404)
            return envelope(job)

        @app.post("/api/admin/import/jobs/{job_id}")
        async def job_action(job_id: str, body: dict):
            backend.calls.append(("POST", f"/api/admin/import/jobs/{job_id}"))
            job = backend._find(job_id)
            if job is None:
                return JSONResponse(error_envelope("ジョブが見つかりません"), status_code=404)
            if backend.action_status >= 400:
                return JSONResponse(error_envelope("操作に失敗しました"), status_code=backend.action_status)
            job["status"] = "cancelled" if body.get("action") == "cancel" else "pending"
            return JSONResponse(envelope(job), status_code=backend.action_status)

        @app.get("/api/admin/import/jobs/{job_id}/preview")
        async def preview(job_id: str, intent: Optional[str] = None):
            backend.calls.append(("GET", f"/api/admin/import/jobs/{job_id}/preview"))
            items = [
                item for item in backend.classified if intent is None or item["intent"] == intent
            ]
            return envelope({"items": items, "total": len(items)})

        return app


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def backend_client(backend: FakeBackend) -> ImportApiClient:
    """API client wired to the in-memory backend."""
    return ImportApiClient(
        base_url=BASE_URL,
        token="test-token",
        transport=httpx.ASGITransport(app=backend.app),
    )
