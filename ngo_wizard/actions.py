"""Membership back-office operations the wizards submit to.

Each operation returns a discriminated result: ``{"success": True, "data": ...}``
or ``{"success": False, "error": ...}``.
"""

from __future__ import annotations

import calendar
import logging
import random
import uuid
from datetime import date, datetime, timezone
from typing import Any, Literal

from ngo_wizard import storage
from ngo_wizard.config import config
from ngo_wizard.flows import load_plans

logger = logging.getLogger(__name__)

DurationType = Literal["MONTH", "YEAR", "LIFETIME"]


def list_plans(include_inactive: bool = False) -> list[dict[str, Any]]:
    plans = load_plans()
    if not include_inactive:
        plans = [p for p in plans if p.get("is_active")]
    return sorted(plans, key=lambda p: p.get("amount", 0))


def get_plan(plan_id: Any) -> dict[str, Any] | None:
    try:
        wanted = int(plan_id)
    except (TypeError, ValueError):
        return None
    for plan in list_plans():
        if plan.get("id") == wanted:
            return plan
    return None


def calculate_expiration_date(duration: int, duration_type: DurationType, from_date: datetime | None = None) -> datetime | None:
    if duration_type == "LIFETIME":
        return None
    start = from_date or datetime.now(timezone.utc)
    if duration_type == "YEAR":
        return _add_months(start, 12 * duration)
    if duration_type == "MONTH":
        return _add_months(start, duration)
    raise ValueError(f"Unknown duration type: {duration_type}")


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


async def generate_membership_number(today: date | None = None) -> str:
    stamp = (today or datetime.now(timezone.utc).date()).strftime("%Y%m%d")
    while True:
        number = f"{config.MEMBERSHIP_PREFIX}-{stamp}-{random.randint(1000, 9999)}"
        if storage.get_record("membership", number) is None:
            return number


async def apply_membership(values: dict[str, Any]) -> dict[str, Any]:
    plan = get_plan(values.get("plan_id"))
    if plan is None:
        return {"success": False, "error": "Selected plan is not available"}

    aadhaar = str(values.get("aadhaar") or "")
    if aadhaar and storage.get_record("aadhaar", aadhaar) is not None:
        return {"success": False, "error": "A membership with this Aadhaar number already exists"}

    number = await generate_membership_number()
    record = {
        **values,
        "id": uuid.uuid4().hex,
        "membership_number": number,
        "plan_id": plan["id"],
        "status": "PENDING",
        "expires_at": None,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    storage.put_record("membership", number, record)
    storage.put_record("membership_id", record["id"], {"membership_number": number})
    if aadhaar:
        storage.put_record("aadhaar", aadhaar, {"membership_number": number})

    logger.info("Membership %s created for plan %s", number, plan["name"])
    return {"success": True, "data": {"id": record["id"], "membership_number": number, "status": "PENDING"}}


async def get_membership_by_number(number: str) -> dict[str, Any] | None:
    return storage.get_record("membership", (number or "").strip().upper())


async def get_membership_by_id(membership_id: str) -> dict[str, Any] | None:
    ref = storage.get_record("membership_id", membership_id)
    if ref is None:
        return None
    return storage.get_record("membership", ref["membership_number"])


def membership_summary(record: dict[str, Any]) -> dict[str, Any]:
    plan = get_plan(record.get("plan_id"))
    return {
        "membership_id": record.get("id"),
        "membership_number": record.get("membership_number"),
        "name": record.get("name"),
        "status": record.get("status"),
        "plan": plan["name"] if plan else None,
        "expires_at": record.get("expires_at"),
    }


async def submit_renewal_request(values: dict[str, Any]) -> dict[str, Any]:
    membership_id = values.get("membership_id")
    if not membership_id or await get_membership_by_id(str(membership_id)) is None:
        return {"success": False, "error": "Membership not found"}
    plan = get_plan(values.get("plan_id"))
    if plan is None:
        return {"success": False, "error": "Selected plan is not available"}

    renewal_id = uuid.uuid4().hex
    storage.put_record(
        "renewal",
        renewal_id,
        {
            "id": renewal_id,
            "membership_id": membership_id,
            "plan_id": plan["id"],
            "payment_mode": values.get("payment_mode"),
            "payment_proof": values.get("payment_proof"),
            "status": "PENDING",
            "created_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info("Renewal %s requested for membership %s", renewal_id, membership_id)
    return {"success": True, "data": {"id": renewal_id, "status": "PENDING"}}


async def verify_renewal(renewal_id: str, status: Literal["APPROVED", "REJECTED"], admin_comment: str | None = None) -> dict[str, Any]:
    """Approve or reject a pending renewal.

    Approval switches the membership to the renewal's plan, marks it ACTIVE
    and extends the expiry from the current expiry when that is still in the
    future, otherwise from now.
    """
    renewal = storage.get_record("renewal", renewal_id)
    if renewal is None:
        return {"success": False, "error": "Renewal request not found"}

    if status == "APPROVED":
        membership = await get_membership_by_id(renewal["membership_id"])
        plan = get_plan(renewal["plan_id"])
        if membership is None or plan is None:
            return {"success": False, "error": "Renewal refers to a missing membership or plan"}
        now = datetime.now(timezone.utc)
        current = membership.get("expires_at")
        base = now
        if current:
            current_dt = datetime.fromisoformat(current)
            if current_dt > now:
                base = current_dt
        expires = calculate_expiration_date(int(plan.get("duration") or 0), plan["duration_type"], base)
        membership.update(
            plan_id=plan["id"],
            status="ACTIVE",
            expires_at=expires.isoformat() if expires else None,
            payment_image=renewal.get("payment_proof"),
        )
        storage.put_record("membership", membership["membership_number"], membership)

    renewal.update(status=status, admin_comment=admin_comment)
    storage.put_record("renewal", renewal_id, renewal)
    return {"success": True, "data": {"id": renewal_id, "status": status}}


async def create_gallery_item(values: dict[str, Any]) -> dict[str, Any]:
    item_id = uuid.uuid4().hex
    item = {
        "id": item_id,
        "type": values.get("type"),
        "category": values.get("category"),
        "image": values.get("image") if values.get("type") == "IMAGE" else None,
        "video_url": values.get("video_url") if values.get("type") == "VIDEO" else None,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    storage.put_record("gallery", item_id, item)
    return {"success": True, "data": {"id": item_id}}
