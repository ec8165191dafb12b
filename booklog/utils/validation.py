"""Field-level validation for book and recent-selection payloads."""

import base64
import binascii
from typing import Any, Dict, Optional

from booklog import config
from booklog.errors import ValidationError


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_string(
    data: Dict[str, Any],
    field: str,
    errors: Dict[str, str],
    required: bool = False,
    max_length: Optional[int] = None,
) -> Optional[str]:
    value = data.get(field)
    if value is None:
        if required:
            errors[field] = "is required"
        return None
    if not isinstance(value, str):
        errors[field] = "must be a string"
        return None
    if required and not value.strip():
        errors[field] = "must not be empty"
        return None
    if max_length is not None and len(value) > max_length:
        errors[field] = f"must be at most {max_length} characters"
        return None
    return value


def _check_int(
    data: Dict[str, Any],
    field: str,
    errors: Dict[str, str],
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> Optional[int]:
    value = data.get(field)
    if value is None:
        return None
    if not _is_int(value):
        errors[field] = "must be an integer"
        return None
    if minimum is not None and value < minimum:
        errors[field] = f"must be at least {minimum}"
        return None
    if maximum is not None and value > maximum:
        errors[field] = f"must be at most {maximum}"
        return None
    return value


def _check_base64(
    data: Dict[str, Any], field: str, errors: Dict[str, str]
) -> Optional[bytes]:
    value = _check_string(data, field, errors)
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        errors[field] = "must be valid base64"
        return None


def validate_new_book(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a create-in-library payload.

    Returns the cleaned values keyed by BookRecord attribute name. Raises
    ``ValidationError`` listing every bad field at once.
    """
    if not isinstance(data, dict):
        raise ValidationError({"body": "must be an object"})

    errors: Dict[str, str] = {}
    cleaned = {
        "title": _check_string(data, "title", errors, required=True),
        "author": _check_string(data, "author", errors),
        "publish_year": _check_int(data, "publishYear", errors),
        "work_key": _check_string(data, "openLibraryWorkKey", errors),
        "cover_id": _check_int(data, "coverId", errors),
        "cover_image": _check_base64(data, "coverImageBase64", errors),
        "cover_mime_type": _check_string(data, "coverMimeType", errors),
        "review": _check_string(
            data, "review", errors, max_length=config.REVIEW_MAX_LENGTH
        ),
        "rating": _check_int(data, "rating", errors, minimum=1, maximum=5),
    }
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_book_update(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate an update payload; only ``review`` and ``rating`` are kept."""
    if not isinstance(data, dict):
        raise ValidationError({"body": "must be an object"})

    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}
    if "review" in data:
        cleaned["review"] = _check_string(
            data, "review", errors, max_length=config.REVIEW_MAX_LENGTH
        )
    if "rating" in data:
        cleaned["rating"] = _check_int(data, "rating", errors, minimum=1, maximum=5)
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_recent_selection(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a "book selected" payload for the recent-selections list."""
    if not isinstance(data, dict):
        raise ValidationError({"body": "must be an object"})

    errors: Dict[str, str] = {}
    cleaned = {
        "work_key": _check_string(data, "openLibraryWorkKey", errors, required=True),
        "title": _check_string(data, "title", errors, required=True),
        "author": _check_string(data, "author", errors),
        "publish_year": _check_int(data, "publishYear", errors),
        "cover_id": _check_int(data, "coverId", errors),
        "cover_image": _check_base64(data, "coverImageBase64", errors),
        "cover_mime_type": _check_string(data, "coverMimeType", errors),
    }
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_search_term(term: Any) -> str:
    if not isinstance(term, str) or not term.strip():
        raise ValidationError({"q": "must be a non-empty string"})
    return term.strip()
