"""Client-side checks run before any import request is sent."""

from __future__ import annotations

from typing import Any, Optional

from admin_console.core.config import settings
from admin_console.imports.schemas import ImportType, IntentCategory, INTENT_FILTER_ALL

CSV_EXTENSION = ".csv"

MEDIA_REQUIRED_MESSAGE = "対象媒体の選択は必須です"
FILE_REQUIRED_MESSAGE = "ファイルを選択してください"
CSV_ONLY_MESSAGE = "CSV形式のみ対応"


def validate_file_selected(file: Any) -> Optional[str]:
    """Validate that a file has been picked."""
    if file is None:
        return FILE_REQUIRED_MESSAGE
    return None


def validate_csv_filename(name: Optional[str]) -> Optional[str]:
    """Validate that the file name carries a .csv extension."""
    if not name or not name.lower().endswith(CSV_EXTENSION):
        return CSV_ONLY_MESSAGE
    return None


def validate_file_size(size: int, max_bytes: Optional[int] = None) -> Optional[str]:
    """Validate the upload against the size cap."""
    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes
    if size <= 0:
        return "ファイルが空です"
    if size > limit:
        return f"ファイルサイズが上限({limit // (1024 * 1024)}MB)を超えています"
    return None


def validate_import_type(value: Any) -> Optional[str]:
    """Validate the import type is one of the known CSV sources."""
    try:
        ImportType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in ImportType)
        return f"Unknown import type: {value} (expected one of {allowed})"
    return None


def validate_media_id(value: Optional[str]) -> Optional[str]:
    """Validate that a target media has been chosen."""
    if value is None or not str(value).strip():
        return MEDIA_REQUIRED_MESSAGE
    return None


def validate_intent_filter(value: Optional[str]) -> Optional[str]:
    """Validate a classification preview filter value."""
    if value is None or value == INTENT_FILTER_ALL:
        return None
    if value not in IntentCategory._value2member_map_:
        return f"Unknown intent filter: {value}"
    return None


def validate_upload(file: Any, max_bytes: Optional[int] = None) -> Optional[str]:
    """Run the file checks in order and return the first failure.

    Args:
        file: A ``SelectedFile`` or None
        max_bytes: Size cap override; defaults to ``settings.max_upload_bytes``

    Returns:
        The first error message, or None when the file is acceptable
    """
    error = validate_file_selected(file)
    if error:
        return error
    error = validate_csv_filename(file.name)
    if error:
        return error
    return validate_file_size(file.size, max_bytes)
