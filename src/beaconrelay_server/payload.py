"""Beacon payload coercion and sanitization."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

ALLOWED_FIELDS = frozenset({
    "client_id", "session_id", "atraid", "atrauid", "timestamp",
    "page_url", "page_path", "page_title", "referrer_url", "referrer_host",
    "language", "screen_resolution",
    "utm_source_first", "utm_source_last",
    "utm_medium_first", "utm_medium_last",
    "utm_campaign_first", "utm_campaign_last",
    "utm_term_first", "utm_term_last",
    "utm_content_first", "utm_content_last",
    "gclid", "gbraid", "wbraid", "fbclid", "msclkid", "ttclid",
    "li_fat_id", "twclid", "ciid", "clickid", "adset_name",
    "channel_first_touch", "channel_last_touch",
    "event_type", "event_params",
})

MAX_EVENT_PARAMS_BYTES = 8192

JSON_TYPES = ("application/json",)
TEXT_TYPES = ("text/plain",)
BINARY_TYPES = ("application/octet-stream",)

Body = Union[Dict[str, Any], list, str, bytes, int, float, bool, None]


@dataclass(frozen=True)
class ValidationResult:
    payload: Dict[str, Any]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name} is not valid JSON")


def _parse_json_text(text: str) -> Any:
    # Anything that could not be re-encoded for the webhook (NaN/Infinity,
    # lone surrogates) is treated like unparseable input.
    try:
        parsed = json.loads(text, parse_constant=_reject_constant)
        json.dumps(parsed, allow_nan=False, ensure_ascii=False).encode("utf-8")
    except (ValueError, UnicodeEncodeError):
        return {}
    return {} if parsed is None else parsed


def decode_transport(raw: bytes, content_type: Optional[str]) -> Body:
    """Turn a raw request body into the form its transport implies.

    JSON bodies come back parsed; plain-text bodies (sendBeacon with a string)
    as `str`; octet-stream bodies (sendBeacon with a Blob) as `bytes`.
    Anything else, or an empty body, is `{}`.
    """
    if not raw:
        return {}
    mt = media_type(content_type)
    if mt in JSON_TYPES:
        return _parse_json_text(raw.decode("utf-8", errors="replace"))
    if mt in TEXT_TYPES:
        return raw.decode("utf-8", errors="replace")
    if mt in BINARY_TYPES:
        return raw
    return {}


def coerce_payload(body: Body) -> Any:
    """Normalize a decoded body to structured data, `{}` when unparseable."""
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        return _parse_json_text(body) if body else {}
    if body is None:
        return {}
    return body


def is_empty_payload(body: Any) -> bool:
    return isinstance(body, Mapping) and len(body) == 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _serialized_size(value: Any) -> int:
    return len(json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


def sanitize_payload(body: Any) -> ValidationResult:
    """Validate a coerced payload and return an allow-listed copy.

    The input is never mutated. Unknown top-level keys are dropped, not
    rejected. Checks run in order and the first failure wins.
    """
    if not isinstance(body, Mapping):
        return ValidationResult(payload={}, error="invalid body")

    if "session_id" in body:
        sid = body["session_id"]
        if sid != "" and not _is_number(sid):
            return ValidationResult(payload={}, error="session_id must be number or empty")

    params = body.get("event_params")
    if params is not None:
        if not isinstance(params, Mapping):
            return ValidationResult(payload={}, error="event_params must be object")
        if _serialized_size(params) > MAX_EVENT_PARAMS_BYTES:
            return ValidationResult(payload={}, error="event_params too large")

    return ValidationResult(payload={k: v for k, v in body.items() if k in ALLOWED_FIELDS})
