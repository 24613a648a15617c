"""Tests for the admin-console command line."""

from __future__ import annotations

import asyncio
import json

import pytest

from admin_console.core.config import settings
from admin_console.jobs.cli import build_parser, run

from helpers import error_envelope, job_payload


class TestParser:
    """Tests for argument parsing."""

    def test_import_arguments(self):
        """Test the import subcommand options."""
        args = build_parser().parse_args(
            ["import", "orders.csv", "--media-id", "media-42", "--type", "similarweb"]
        )

        assert args.command == "import"
        assert args.file == "orders.csv"
        assert args.media_id == "media-42"
        assert args.import_type == "similarweb"
        assert args.no_follow is False

    def test_import_requires_media(self):
        """Test that --media-id is mandatory."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["import", "orders.csv"])

    def test_preview_intent_choices(self):
        """Test that preview filters come from the closed set."""
        assert build_parser().parse_args(["preview", "job-1"]).intent == "all"
        with pytest.raises(SystemExit):
            build_parser().parse_args(["preview", "job-1", "--intent", "navigational"])


class TestCommands:
    """Tests for running commands against the in-memory backend."""

    @pytest.mark.asyncio
    async def test_media(self, backend_client, capsys):
        """Test listing media."""
        code = await run(build_parser().parse_args(["media"]), backend_client)

        assert code == 0
        assert "media-42  Example Media" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_jobs(self, backend, backend_client, capsys):
        """Test listing recent jobs."""
        backend.jobs = [
            job_payload("job-2", "processing", current_step="db_lookup", total_rows=10, processed_rows=4),
            job_payload("job-1", "completed"),
        ]

        code = await run(build_parser().parse_args(["jobs"]), backend_client)

        out = capsys.readouterr().out
        assert code == 0
        assert "処理中 - DB検索" in out
        assert "4/10 (40%)" in out
        assert "2/2" in out

    @pytest.mark.asyncio
    async def test_import_no_follow(self, backend, backend_client, capsys, tmp_path, monkeypatch):
        """Test that import walks the wizard and reports the new job."""
        monkeypatch.setattr(settings, "reconcile_delay_seconds", 0.0)
        path = tmp_path / "orders.csv"
        path.write_bytes(b"keyword,volume\nfoo,100\n")

        code = await run(
            build_parser().parse_args(
                ["import", str(path), "--media-id", "media-42", "--no-follow"]
            ),
            backend_client,
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "全5000件のデータ" in out
        assert "ジョブを作成しました: job-123" in out
        assert backend.uploads[-1]["media_id"] == "media-42"

    @pytest.mark.asyncio
    async def test_import_rejects_non_csv(self, backend_client, capsys, tmp_path):
        """Test that a non-CSV file stops before any upload."""
        path = tmp_path / "orders.xlsx"
        path.write_bytes(b"x")

        code = await run(
            build_parser().parse_args(["import", str(path), "--media-id", "media-42"]),
            backend_client,
        )

        assert code == 1
        assert "CSV形式のみ対応" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_import_validation_error(self, backend, backend_client, capsys, tmp_path):
        """Test that a validation error is printed with exit code 1."""
        backend.validate_error = error_envelope("不正な形式です")
        path = tmp_path / "orders.csv"
        path.write_bytes(b"keyword\nfoo\n")

        code = await run(
            build_parser().parse_args(["import", str(path), "--media-id", "media-42"]),
            backend_client,
        )

        assert code == 1
        assert "不正な形式です" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_watch_exits_on_terminal_job(self, backend, backend_client, capsys):
        """Test that watch --job-id returns once the job is terminal."""
        backend.jobs = [job_payload("job-1", "completed")]

        code = await asyncio.wait_for(
            run(build_parser().parse_args(["watch", "--job-id", "job-1"]), backend_client),
            timeout=2,
        )

        assert code == 0
        assert "完了" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_watch_stops_on_signal_event(self, backend_client):
        """Test that a set stop event ends watch."""
        stop_event = asyncio.Event()
        stop_event.set()

        code = await asyncio.wait_for(
            run(build_parser().parse_args(["watch"]), backend_client, stop_event),
            timeout=2,
        )

        assert code == 0

    @pytest.mark.asyncio
    async def test_cancel_prints_job(self, backend, backend_client, capsys):
        """Test cancel prints the updated job."""
        backend.jobs = [job_payload("job-1", "processing")]

        code = await run(build_parser().parse_args(["cancel", "job-1"]), backend_client)

        assert code == 0
        assert "ジョブ job-1: キャンセル" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_api_error_exit_code(self, backend_client, capsys):
        """Test that backend errors print a JSON error document."""
        code = await run(build_parser().parse_args(["retry", "job-missing"]), backend_client)

        err = capsys.readouterr().err
        assert code == 1
        document = json.loads(err.splitlines()[0])
        assert document["error"]["status_code"] == 404
        assert "ジョブが見つかりません" in err

    @pytest.mark.asyncio
    async def test_preview(self, backend_client, capsys):
        """Test the classification preview command."""
        code = await run(
            build_parser().parse_args(["preview", "job-1", "--intent", "transactional"]),
            backend_client,
        )

        out = capsys.readouterr().out
        assert code == 0
        assert out.splitlines()[0] == "1件"
        assert "apply nurse  [応募直前]" in out
