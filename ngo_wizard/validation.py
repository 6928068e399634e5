from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any
from urllib.parse import urlparse

from ngo_wizard.config import config
from ngo_wizard.encoder import decode_data_url
from ngo_wizard.flows import FieldSpec

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def is_required(spec: FieldSpec, values: Mapping[str, Any]) -> bool:
    rule = spec.required_if
    if rule is None:
        return spec.required
    other = values.get(rule.id)
    if rule.present:
        return not is_empty(other)
    return str(other) == str(rule.equals)


def check_field(spec: FieldSpec, values: Mapping[str, Any]) -> list[str]:
    """Return the violated-constraint messages for one field; empty means valid."""
    value = values.get(spec.id)

    if is_empty(value):
        if is_required(spec, values):
            return [spec.message or f"{spec.label or spec.id} is required"]
        return []

    problem = _type_problem(spec, value)
    if problem is None and isinstance(value, str):
        candidate = value.strip()
        if spec.min_length is not None and len(candidate) < spec.min_length:
            problem = f"Must be at least {spec.min_length} characters"
        elif spec.pattern and not re.fullmatch(spec.pattern, candidate):
            problem = "Invalid format"
    if problem is None:
        return []
    return [spec.message or problem]


def _type_problem(spec: FieldSpec, value: Any) -> str | None:
    ftype = spec.type

    if ftype == "enum":
        options = [str(o) for o in spec.options or []]
        if str(value) not in options:
            return f"Choose one of: {', '.join(options)}"
        return None

    if ftype == "number":
        if isinstance(value, bool):
            return "Enter a valid number."
        try:
            number = float(value)
        except (TypeError, ValueError):
            return "Enter a valid number."
        if not math.isfinite(number):
            return "Enter a valid number."
        if spec.minimum is not None and number < spec.minimum:
            return f"Must be at least {spec.minimum:g}"
        return None

    if ftype == "email":
        if not _EMAIL_RE.match(str(value).strip()):
            return "Enter a valid email."
        return None

    if ftype == "date":
        candidate = str(value).strip()
        if not _DATE_RE.match(candidate):
            return "Enter a date as YYYY-MM-DD."
        try:
            date.fromisoformat(candidate)
        except ValueError:
            return "Enter a date as YYYY-MM-DD."
        return None

    if ftype == "url":
        parsed = urlparse(str(value).strip())
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            return "Enter a valid URL."
        return None

    if ftype == "file":
        if not isinstance(value, str) or not value.startswith("data:"):
            return "Upload a file."
        try:
            size = len(decode_data_url(value)[1])
        except ValueError:
            return "The uploaded file is unreadable."
        limit = spec.max_bytes or config.MAX_FILE_BYTES
        if size > limit:
            return f"File must be less than {_human_size(limit)}"
        return None

    if not isinstance(value, str):
        return "Enter text."
    return None


def _human_size(n: int) -> str:
    if n % (1024 * 1024) == 0:
        return f"{n // (1024 * 1024)} MB"
    if n % 1024 == 0:
        return f"{n // 1024} KB"
    return f"{n} bytes"


def validate_fields(
    schema: Mapping[str, FieldSpec],
    values: Mapping[str, Any],
    field_names: Iterable[str],
    errors: dict[str, list[str]],
) -> bool:
    """Validate ``field_names`` against ``values`` and record the outcome in ``errors``.

    A failing field gets its messages stored under its name; a passing one has
    any previous entry removed. Fields without a spec always pass. Returns
    True when every named field passed.
    """
    ok = True
    for name in field_names:
        spec = schema.get(name)
        messages = check_field(spec, values) if spec is not None else []
        if messages:
            errors[name] = messages
            ok = False
        else:
            errors.pop(name, None)
    return ok


def dependents_of(schema: Mapping[str, FieldSpec], field: str) -> list[str]:
    """Fields whose requiredness is decided by ``field``."""
    return [fid for fid, spec in schema.items() if spec.required_if and spec.required_if.id == field]
