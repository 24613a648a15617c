"""Plain-text rendering of jobs, previews and results."""

from __future__ import annotations

from typing import Iterable, Optional

from admin_console.imports.schemas import (
    ClassificationItem,
    ImportJob,
    JobStatus,
    PreviewRow,
)

STATUS_LABELS = {
    "pending": "待機中",
    "processing": "処理中",
    "completed": "完了",
    "failed": "失敗",
    "cancelled": "キャンセル",
}

STEP_LABELS = {
    "parse": "CSVパース",
    "db_lookup": "DB検索",
    "rule_classification": "ルール分類",
    "ai_classification": "AI分類",
    "db_insert": "データ保存",
    "finalize": "完了処理",
}

INTENT_LABELS = {
    "branded": "指名検索",
    "transactional": "応募直前",
    "commercial": "比較検討",
    "informational": "情報収集",
    "b2b": "法人向け",
    "unknown": "未分類",
}

THRESHOLD_EXPLANATION = (
    "月間検索ボリューム100以上かつ推定流入数50以上のキーワードのみ取り込み対象です"
)

# Errors shown per list; the worker stores more
MAX_LISTED_ERRORS = 3


def status_label(status: JobStatus | str) -> str:
    value = status.value if isinstance(status, JobStatus) else status
    return STATUS_LABELS.get(value, value)


def step_label(step: Optional[str]) -> str:
    if not step:
        return ""
    return STEP_LABELS.get(step, step)


def intent_label(intent: str) -> str:
    return INTENT_LABELS.get(intent, intent)


def progress_percent(job: ImportJob) -> Optional[int]:
    """Whole-number progress, or None until the row total is known."""
    progress = job.progress
    if progress is None:
        return None
    return int(progress * 100)


def preview_heading(total_rows: int) -> str:
    return f"全{total_rows}件のデータ"


def threshold_notice(skipped: int) -> Optional[str]:
    """Explain rows dropped by the volume/traffic threshold."""
    if skipped <= 0:
        return None
    return f"{skipped}件のキーワードは基準未満のためスキップしました（{THRESHOLD_EXPLANATION}）"


def job_line(job: ImportJob) -> str:
    """One-line summary used by job lists."""
    status = status_label(job.status)
    if job.status == JobStatus.PROCESSING and job.current_step:
        status = f"{status} - {step_label(job.current_step)}"

    parts = [job.file_name or job.id, status]
    percent = progress_percent(job)
    if job.status == JobStatus.PROCESSING and percent is not None:
        parts.append(f"{job.processed_rows}/{job.total_rows} ({percent}%)")
    if job.created_at is not None:
        parts.append(job.created_at.strftime("%m/%d %H:%M"))
    return "  ".join(parts)


def result_lines(job: ImportJob) -> list[str]:
    """Detail lines for a job: counts, breakdowns and the first errors."""
    lines = [f"ジョブ {job.id}: {status_label(job.status)}"]

    if job.is_active:
        if job.current_step:
            lines.append(f"ステップ: {step_label(job.current_step)}")
        percent = progress_percent(job)
        if percent is not None:
            lines.append(f"進捗: {job.processed_rows}/{job.total_rows}行 ({percent}%)")
        return lines

    if job.status == JobStatus.COMPLETED:
        lines.append(f"成功: {job.success_count}件 / エラー: {job.error_count}件")
        if job.intent_summary:
            lines.append(
                "意図別: "
                + ", ".join(
                    f"{intent_label(intent)} {count}件"
                    for intent, count in job.intent_summary.items()
                )
            )
        stats = job.classification_stats
        if stats is not None:
            lines.append(
                f"DB既存 {stats.db_existing}件 / ルール分類 {stats.rule_classified}件 / "
                f"AI分類 {stats.ai_classified}件"
            )
            if stats.duplicate_keywords:
                lines.append(f"重複キーワード: {stats.duplicate_keywords}件")
            notice = threshold_notice(stats.skipped_by_threshold)
            if notice:
                lines.append(notice)

    if job.error_message:
        lines.append(f"エラー: {job.error_message}")

    details = job.error_details
    if details is not None:
        lines.extend(_listed("保存エラー", details.insert_errors))
        lines.extend(_listed("パースエラー", details.parse_errors))
        if details.duplicate_info:
            lines.append(f"重複: {details.duplicate_info}")

    if job.can_retry:
        lines.append("リトライできます")
    return lines


def preview_lines(total_rows: int, rows: Iterable[PreviewRow], columns: Iterable[str]) -> list[str]:
    lines = [preview_heading(total_rows), " | ".join(columns)]
    for row in rows:
        volume = "-" if row.search_volume is None else f"{row.search_volume:g}"
        traffic = "-" if row.estimated_traffic is None else f"{row.estimated_traffic:g}"
        lines.append(f"{row.keyword} | {volume} | {traffic}")
    return lines


def classification_lines(items: Iterable[ClassificationItem], total: int) -> list[str]:
    lines = [f"{total}件"]
    for item in items:
        volume = "-" if item.search_volume is None else f"{item.search_volume:g}"
        line = f"{item.keyword}  [{intent_label(item.intent)}]  {volume}"
        if item.intent_reason:
            line = f"{line}  {item.intent_reason}"
        lines.append(line)
    return lines


def _listed(title: str, errors: list) -> list[str]:
    if not errors:
        return []
    lines = [f"{title} ({len(errors)}件):"]
    lines.extend(f"  - {error}" for error in errors[:MAX_LISTED_ERRORS])
    return lines
