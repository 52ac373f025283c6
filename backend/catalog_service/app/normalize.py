# backend/catalog_service/app/normalize.py
"""
Conversions between stored column values and the shapes the API returns.

Nothing in this module raises on bad data: corrupt historical rows degrade to
empty collections, zero or empty strings so that reads keep working.
"""

import json
import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_FALSE_STRINGS = {"", "0", "false", "no", "off"}

TEXT_FIELDS = ("name", "brand", "category", "warranty", "notes")


def _parse_json(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def parse_json_list(value: Any) -> List[Any]:
    parsed = _parse_json(value)
    if isinstance(parsed, (list, tuple)):
        return list(parsed)
    return []


def parse_json_object(value: Any) -> Dict[str, Any]:
    parsed = _parse_json(value)
    if isinstance(parsed, dict):
        return dict(parsed)
    return {}


def to_json_text(value: Any, default: Any) -> str:
    """Serialize a list/dict for a JSON column, falling back to ``default``'s type."""
    if not isinstance(value, type(default)):
        if isinstance(default, list) and isinstance(value, tuple):
            value = list(value)
        else:
            value = default
    return json.dumps(value, default=str)


def to_number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, ArithmeticError):
        return default
    if not math.isfinite(number):
        return default
    return number


def to_int(value: Any, default: int = 0) -> int:
    return int(to_number(value, default))


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, (bytes, bytearray)):
        # MySQL BIT(1)
        return any(value)
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def maybe_number(value: Any) -> Any:
    """Return an int/float for strings that read as a finite number, else the input."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        return ""
    if _INTEGER_RE.match(text):
        return int(text)
    if "_" in text:
        return value
    try:
        number = float(text)
    except ValueError:
        return value
    if not math.isfinite(number):
        return value
    return number


def whole_number(number: float) -> Any:
    """Collapse an integral float to int so 1199.0 renders as 1199."""
    return int(number) if number.is_integer() else number


def format_date(value: Any) -> str:
    """Render a date-like value as ``YYYY-MM-DD``; empty string when absent."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text.split("T", 1)[0].strip()


def format_timestamp(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def timestamp_ms(value: Any) -> Optional[int]:
    """Milliseconds since the epoch; naive timestamps are read as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def normalize_product(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn a products row (any subset of columns) into the API product shape."""
    release = row.get("release")
    if release is None:
        release = row.get("release_date")

    product = {"id": _text(row.get("id"))}
    for field in TEXT_FIELDS:
        product[field] = _text(row.get(field))
    product.update(
        {
            "price": whole_number(to_number(row.get("price"))),
            "stock": to_int(row.get("stock")),
            "colors": parse_json_list(row.get("colors")),
            "features": parse_json_list(row.get("features")),
            "specs": parse_json_object(row.get("specs")),
            "tags": parse_json_list(row.get("tags")),
            "active": to_bool(row.get("active"), True),
            "featured": to_bool(row.get("featured"), False),
            "release": format_date(release),
            "created_at": format_timestamp(row.get("created_at")),
        }
    )
    return product


def normalize_review(row: Mapping[str, Any]) -> Dict[str, Any]:
    created_at = row.get("created_at")
    return {
        "id": row.get("id"),
        "name": _text(row.get("name")),
        "rating": to_number(row.get("rating")),
        "comment": _text(row.get("comment")),
        "created_ms": timestamp_ms(created_at),
        "created_at": format_timestamp(created_at),
    }


def normalize_image_urls(images: Any) -> List[str]:
    """Accept bare URL strings or ``{"url": ...}`` objects; drop blanks."""
    if not isinstance(images, (list, tuple)):
        return []
    urls = []
    for item in images:
        if isinstance(item, Mapping):
            item = item.get("url")
        if item is None:
            continue
        url = str(item).strip()
        if url:
            urls.append(url)
    return urls


def service_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def normalize_service_entries(services: Any) -> List[Tuple[str, str]]:
    """
    Normalize ``[{"k"|"key": ..., "v"|"value": ...}, ...]`` or ``{key: value}``
    into ordered ``(k, v)`` pairs. Blank keys are dropped, duplicates are kept.
    """
    if isinstance(services, Mapping):
        items = list(services.items())
    elif isinstance(services, (list, tuple)):
        items = []
        for entry in services:
            if not isinstance(entry, Mapping):
                continue
            key = entry.get("k", entry.get("key"))
            value = entry.get("v", entry.get("value"))
            items.append((key, value))
    else:
        return []

    entries = []
    for key, value in items:
        if key is None:
            continue
        key = str(key).strip()
        if key:
            entries.append((key, service_text(value)))
    return entries
