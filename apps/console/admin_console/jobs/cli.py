"""Command-line interface for import jobs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Optional

from admin_console.core.config import settings
from admin_console.core.errors import ConsoleError, format_error, user_message
from admin_console.imports.client import ImportApiClient
from admin_console.imports.polling import JobPoller
from admin_console.imports.presenters import (
    classification_lines,
    job_line,
    preview_lines,
    result_lines,
)
from admin_console.imports.schemas import (
    INTENT_FILTER_ALL,
    ImportType,
    IntentCategory,
    SelectedFile,
)
from admin_console.imports.service import ImportController
from admin_console.imports.wizard import WizardStep
from admin_console.main import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="admin-console", description="Run and monitor CSV keyword imports."
    )
    parser.add_argument("--base-url", help="Admin application origin")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("media", help="List selectable media")

    jobs = commands.add_parser("jobs", help="List recent import jobs")
    jobs.add_argument("--limit", type=int, default=None)
    jobs.add_argument("--status", default=None)

    watch = commands.add_parser("watch", help="Follow the recent job list")
    watch.add_argument("--job-id", help="Exit once this job is terminal")

    run = commands.add_parser("import", help="Validate, submit and follow a CSV import")
    run.add_argument("file")
    run.add_argument("--media-id", required=True)
    run.add_argument(
        "--type",
        dest="import_type",
        choices=[t.value for t in ImportType],
        default=ImportType.RAKKO_KEYWORDS.value,
    )
    run.add_argument("--no-follow", action="store_true", help="Exit after submission")

    for name in ("cancel", "retry"):
        action = commands.add_parser(name, help=f"{name.capitalize()} a job")
        action.add_argument("job_id")

    preview = commands.add_parser("preview", help="Show classified keywords of a job")
    preview.add_argument("job_id")
    preview.add_argument(
        "--intent",
        choices=[INTENT_FILTER_ALL] + [c.value for c in IntentCategory],
        default=INTENT_FILTER_ALL,
    )
    return parser


def _print_lines(lines: list[str]) -> None:
    for line in lines:
        print(line)


def _print_error(error: Exception) -> None:
    document = format_error(error, include_details=settings.app_env != "production")
    print(json.dumps(document, ensure_ascii=False, default=str), file=sys.stderr)


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set ``stop_event`` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows / limited environments
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))


async def _follow(poller: JobPoller, stop_event: asyncio.Event, job_id: Optional[str]) -> None:
    """Print list changes until stopped, or until ``job_id`` is terminal."""
    done = asyncio.Event()

    def on_update(current: JobPoller) -> None:
        _print_lines([job_line(job) for job in current.jobs])
        if current.is_stale:
            print("(一覧の更新に失敗しています)")
        if job_id is not None and current.current_job is not None and current.current_job.is_terminal:
            done.set()

    poller.on_update = on_update
    poller.track(job_id)
    if not poller.is_running:
        await poller.start()
    elif poller.current_job is not None:
        on_update(poller)

    waiters = [asyncio.ensure_future(stop_event.wait()), asyncio.ensure_future(done.wait())]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        poller.stop()
        await poller.wait_idle()


async def _run_import(args: argparse.Namespace, client: ImportApiClient, stop_event: asyncio.Event) -> int:
    try:
        file = SelectedFile.from_path(args.file)
    except OSError as e:
        print(f"{args.file}: {e.strerror}", file=sys.stderr)
        return 1

    controller = ImportController(client=client)
    await controller.wizard.load_media_options()

    if not controller.select_file(file):
        print(controller.state.field_errors["file"], file=sys.stderr)
        return 1
    await controller.next()
    controller.configure(import_type=args.import_type, media_id=args.media_id)

    await controller.next()
    if controller.wizard.step != WizardStep.PREVIEW:
        print(controller.state.error or controller.state.field_errors.get("media_id"), file=sys.stderr)
        return 1
    state = controller.state
    _print_lines(preview_lines(state.total_rows, state.preview_rows[:5], state.detected_columns))

    await controller.next()
    if controller.wizard.step != WizardStep.EXECUTE:
        print(controller.state.error, file=sys.stderr)
        return 1
    print(f"ジョブを作成しました: {state.active_job_id}")

    if args.no_follow:
        controller.poller.stop()
        await controller.poller.wait_idle()
        return 0

    await _follow(controller.poller, stop_event, state.active_job_id)
    job = controller.active_job
    if job is not None:
        _print_lines(result_lines(job))
    return 0


async def run(args: argparse.Namespace, client: ImportApiClient, stop_event: asyncio.Event | None = None) -> int:
    """Execute a parsed command and return the process exit code."""
    stop_event = stop_event or asyncio.Event()
    logger.debug(f"Running {args.command}")
    try:
        if args.command == "media":
            for media in await client.list_media():
                print(f"{media.id}  {media.name}")
        elif args.command == "jobs":
            result = await client.list_jobs(limit=args.limit, status=args.status)
            _print_lines([job_line(job) for job in result.jobs])
            print(f"{len(result.jobs)}/{result.total}")
        elif args.command == "watch":
            await _follow(JobPoller(client), stop_event, args.job_id)
        elif args.command == "import":
            return await _run_import(args, client, stop_event)
        elif args.command in ("cancel", "retry"):
            await client.job_action(args.job_id, args.command)
            job = await client.get_job(args.job_id)
            _print_lines(result_lines(job))
        elif args.command == "preview":
            page = await client.classification_preview(args.job_id, args.intent)
            _print_lines(classification_lines(page.items, page.total))
    except ConsoleError as e:
        _print_error(e)
        print(user_message(e), file=sys.stderr)
        return 1
    return 0


async def _main(args: argparse.Namespace) -> int:
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)
    async with ImportApiClient(base_url=args.base_url) as client:
        return await run(args, client, stop_event)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
