"""Turns uploaded files into data URLs usable both as field values and as previews.

Each selection for a field is stamped with a generation number when encoding
starts. Only the most recently issued generation may write the field, so a
slow encode of a superseded file can never overwrite a newer one.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ngo_wizard.config import config
from ngo_wizard.state import FormState

logger = logging.getLogger(__name__)


class FileTooLarge(Exception):
    """Raised before encoding when a selected file exceeds the upload limit."""

    def __init__(self, filename: str, size: int, limit: int) -> None:
        super().__init__(f"{filename or 'file'} is {size} bytes; the limit is {limit} bytes")
        self.filename = filename
        self.size = size
        self.limit = limit


@dataclass
class SelectedFile:
    """A local file picked by the user; ``reader`` yields its bytes."""

    filename: str
    content_type: str | None
    size: int | None
    reader: Callable[[], Awaitable[bytes]]

    @classmethod
    def from_bytes(cls, filename: str, data: bytes, content_type: str | None = None) -> "SelectedFile":
        async def _read() -> bytes:
            return data

        return cls(filename=filename, content_type=content_type, size=len(data), reader=_read)


def to_data_url(data: bytes, content_type: str | None) -> str:
    mime = (content_type or "").strip() or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(value: str) -> tuple[str, bytes]:
    """Split a ``data:<mime>;base64,<payload>`` string into its mime type and bytes."""
    if not value.startswith("data:") or "," not in value:
        raise ValueError("Not a data URL")
    header, payload = value[5:].split(",", 1)
    parts = header.split(";")
    mime = parts[0] or "text/plain"
    if "base64" not in parts[1:]:
        raise ValueError("Only base64 data URLs are supported")
    try:
        return mime, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Corrupt base64 payload") from exc


class FileEncoder:
    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes or config.MAX_FILE_BYTES

    def check_size(self, file: SelectedFile) -> None:
        if file.size is not None and file.size > self.max_bytes:
            raise FileTooLarge(file.filename, file.size, self.max_bytes)

    async def encode(self, file: SelectedFile) -> str:
        data = await file.reader()
        if len(data) > self.max_bytes:
            raise FileTooLarge(file.filename, len(data), self.max_bytes)
        return await asyncio.to_thread(to_data_url, data, file.content_type)

    @staticmethod
    def begin(state: FormState, field: str) -> int:
        seq = state.encode_seq.get(field, 0) + 1
        state.encode_seq[field] = seq
        return seq

    @staticmethod
    def is_current(state: FormState, field: str, seq: int) -> bool:
        return state.encode_seq.get(field) == seq

    @staticmethod
    def commit(state: FormState, field: str, seq: int, data_url: str) -> bool:
        if state.encode_seq.get(field) != seq:
            logger.debug("Discarding stale encode of %s (generation %s, latest %s)", field, seq, state.encode_seq.get(field))
            return False
        state.values[field] = data_url
        return True
