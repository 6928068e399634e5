from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An unexpected error occurred"

Operation = Callable[[dict[str, Any]], Awaitable[Any]]


class Outcome(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


class SubmissionDispatcher:
    """Calls the external create/update operation once and normalizes what comes back.

    Whatever the operation does (returns a malformed result, raises, or times
    out) the caller always receives an ``Outcome``.
    """

    def __init__(self, operation: Operation, timeout: float | None = None) -> None:
        self.operation = operation
        self.timeout = timeout

    async def dispatch(self, values: dict[str, Any]) -> Outcome:
        snapshot = dict(values)
        try:
            if self.timeout:
                raw = await asyncio.wait_for(self.operation(snapshot), timeout=self.timeout)
            else:
                raw = await self.operation(snapshot)
        except asyncio.TimeoutError:
            logger.warning("Submission timed out after %ss", self.timeout)
            return Outcome(success=False, error=GENERIC_ERROR)
        except Exception:
            logger.exception("Submission failed")
            return Outcome(success=False, error=GENERIC_ERROR)
        return _normalize(raw)


def _normalize(raw: Any) -> Outcome:
    if isinstance(raw, Outcome):
        outcome = raw
    else:
        try:
            outcome = Outcome.model_validate(raw)
        except ValidationError:
            logger.error("Submission returned an unrecognised result: %r", raw)
            return Outcome(success=False, error=GENERIC_ERROR)
    if not outcome.success and not outcome.error:
        outcome.error = GENERIC_ERROR
    return outcome
