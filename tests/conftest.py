"""Shared fixtures for the wizard tests."""

import base64
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ngo_wizard import storage
from ngo_wizard.config import config

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def data_url(data: bytes = PNG_BYTES, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


MEMBERSHIP_STEPS: list[dict[str, Any]] = [
    {
        "name": "Asha Verma",
        "gender": "FEMALE",
        "dob": "1990-04-12",
        "guardian_type": "FATHER",
        "guardian_name": "Ravi Verma",
        "profession": "Teacher",
        "blood_group": "B+",
    },
    {
        "mobile": "9876543210",
        "email": "asha@example.org",
        "aadhaar": "123412341234",
        "state": "Karnataka",
        "district": "Mysuru",
        "address": "12 Temple Road",
        "pin_code": "570001",
    },
    {
        "profile_picture": data_url(),
        "documents_type": "AADHAAR",
        "documents": data_url(b"%PDF-1.4 test", "application/pdf"),
    },
    {
        "plan_id": 1,
        "payment_mode": "GOOGLE_PAY",
        "payment_image": data_url(),
    },
]


@pytest.fixture
def membership_steps() -> list[dict[str, Any]]:
    return [dict(step) for step in MEMBERSHIP_STEPS]


@pytest.fixture(autouse=True)
def memory_storage(monkeypatch: pytest.MonkeyPatch):
    """Keep every test on the in-process store."""
    monkeypatch.setattr(config, "REDIS_URL", "")
    storage.clear_memory()
    yield
    storage.clear_memory()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from ngo_wizard.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
