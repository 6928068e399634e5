import json
import logging
from typing import Any

import redis

from ngo_wizard.config import config
from ngo_wizard.state import FormState

logger = logging.getLogger(__name__)

_memory: dict[str, str] = {}

_SESSION_PREFIX = "ngo_wizard:session:"
_RECORD_PREFIX = "ngo_wizard:record:"


def save_state(session_id: str, state: FormState) -> None:
    payload = state.model_dump_json()
    key = _SESSION_PREFIX + session_id
    client = _redis_client()
    if client is None:
        _memory[key] = payload
        return
    try:
        client.set(key, payload, ex=config.SESSION_TTL_SEC)
    except Exception:
        logger.warning("Redis unavailable, keeping session %s in memory", session_id, exc_info=True)
        _memory[key] = payload


def load_state(session_id: str) -> FormState:
    key = _SESSION_PREFIX + session_id
    raw = _get(key)
    if not raw:
        raise ValueError("Session not found")
    return FormState.model_validate_json(raw)


def put_record(kind: str, key: str, record: dict[str, Any]) -> None:
    full_key = f"{_RECORD_PREFIX}{kind}:{key}"
    payload = json.dumps(record, default=str)
    client = _redis_client()
    if client is None:
        _memory[full_key] = payload
        return
    try:
        client.set(full_key, payload)
    except Exception:
        logger.warning("Redis unavailable, keeping %s record %s in memory", kind, key, exc_info=True)
        _memory[full_key] = payload


def get_record(kind: str, key: str) -> dict[str, Any] | None:
    raw = _get(f"{_RECORD_PREFIX}{kind}:{key}")
    if not raw:
        return None
    record = json.loads(raw)
    return record if isinstance(record, dict) else None


def clear_memory() -> None:
    _memory.clear()


def _get(key: str) -> str | None:
    client = _redis_client()
    if client is None:
        return _memory.get(key)
    try:
        raw = client.get(key)
    except Exception:
        raw = None
    return raw or _memory.get(key)


def _redis_client():
    redis_url = config.REDIS_URL
    if not redis_url:
        return None
    try:
        return redis.Redis.from_url(redis_url, decode_responses=True)
    except Exception:
        logger.warning("Could not create redis client for %s", redis_url, exc_info=True)
        return None
