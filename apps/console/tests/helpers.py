"""Payload builders shared by the test modules."""

from __future__ import annotations

from typing import Any, Callable

import httpx

from admin_console.imports.client import ImportApiClient

BASE_URL = "http://admin.test"


def envelope(data: Any) -> dict:
    return {"success": True, "data": data}


def error_envelope(message: str | None, code: str | None = None) -> dict:
    error: dict[str, Any] = {}
    if message is not None:
        error["message"] = message
    if code is not None:
        error["code"] = code
    return {"success": False, "error": error}


def job_payload(job_id: str = "job-1", status: str = "pending", **overrides: Any) -> dict:
    """Job snapshot as the job store returns it."""
    job = {
        "id": job_id,
        "status": status,
        "file_name": "orders.csv",
        "import_type": "rakko_keywords",
        "media_id": "media-42",
        "total_rows": None,
        "processed_rows": 0,
        "success_count": 0,
        "error_count": 0,
        "current_step": None,
        "intent_summary": None,
        "classification_stats": None,
        "error_message": None,
        "error_details": None,
        "created_at": "2026-10-01T09:30:00+00:00",
        "started_at": None,
        "completed_at": None,
    }
    job.update(overrides)
    return job


def preview_rows(count: int) -> list[dict]:
    return [
        {
            "keyword": f"keyword {i}",
            "searchVolume": 1000 - i,
            "cpc": 1.5,
            "competition": 0.3,
            "seoDifficulty": 20,
            "searchRank": i + 1,
            "estimatedTraffic": 80,
            "url": f"https://example.com/{i}",
        }
        for i in range(count)
    ]


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> ImportApiClient:
    """API client whose requests are answered by ``handler``."""
    return ImportApiClient(
        base_url=BASE_URL, token="test-token", transport=httpx.MockTransport(handler)
    )
