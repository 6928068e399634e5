"""Flow definitions: field specs and the step table of each wizard."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

_DATA_DIR = Path(__file__).with_name("data")

FieldType = Literal["text", "enum", "email", "phone", "date", "number", "url", "file"]


class RequiredIf(BaseModel):
    """Makes a field required depending on another field's value."""

    id: str
    equals: Any | None = None
    present: bool = False


class FieldSpec(BaseModel):
    id: str
    label: str = ""
    type: FieldType = "text"
    required: bool = False
    required_if: RequiredIf | None = None
    min_length: int | None = None
    pattern: str | None = None
    options: list[Any] | None = None
    minimum: float | None = None
    max_bytes: int | None = None
    message: str | None = None
    default: Any | None = None


class StepDefinition(BaseModel):
    index: int
    label: str = ""
    fields: list[str] = Field(default_factory=list)


class StepTable:
    """Static step index -> required fields lookup.

    Construction fails unless the steps are numbered 0..N-1, every step field
    has a spec, no field belongs to two steps and the steps together cover the
    whole field set.
    """

    def __init__(self, name: str, fields: list[FieldSpec], steps: list[StepDefinition], label: str = "") -> None:
        self.name = name
        self.label = label or name
        self.fields: dict[str, FieldSpec] = {f.id: f for f in fields}
        if len(self.fields) != len(fields):
            raise ValueError(f"{name}: duplicate field ids")
        self.steps = sorted(steps, key=lambda s: s.index)
        _check_table(name, self.fields, self.steps)

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1

    @property
    def all_fields(self) -> list[str]:
        return [f for step in self.steps for f in step.fields]

    def required_fields(self, index: int) -> list[str]:
        return list(self.steps[index].fields)

    def step_label(self, index: int) -> str:
        return self.steps[index].label

    def step_of(self, field: str) -> int | None:
        for step in self.steps:
            if field in step.fields:
                return step.index
        return None

    def defaults(self) -> dict[str, Any]:
        return {fid: ("" if spec.default is None else spec.default) for fid, spec in self.fields.items()}

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "steps": [s.model_dump() for s in self.steps],
            "fields": [f.model_dump(exclude_none=True) for f in self.fields.values()],
        }


def _check_table(name: str, fields: dict[str, FieldSpec], steps: list[StepDefinition]) -> None:
    if not steps:
        raise ValueError(f"{name}: a flow needs at least one step")
    if [s.index for s in steps] != list(range(len(steps))):
        raise ValueError(f"{name}: step indices must be 0..{len(steps) - 1}")

    seen: set[str] = set()
    for step in steps:
        for fid in step.fields:
            if fid not in fields:
                raise ValueError(f"{name}: step {step.index} names unknown field {fid!r}")
            if fid in seen:
                raise ValueError(f"{name}: field {fid!r} appears in more than one step")
            seen.add(fid)

    missing = set(fields) - seen
    if missing:
        raise ValueError(f"{name}: fields not assigned to any step: {sorted(missing)}")

    for spec in fields.values():
        if spec.required_if and spec.required_if.id not in fields:
            raise ValueError(f"{name}: {spec.id!r} depends on unknown field {spec.required_if.id!r}")


def _load_flow(path: Path) -> StepTable:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: flow file must hold an object")
    return StepTable(
        name=str(raw.get("name") or path.stem),
        label=str(raw.get("label") or ""),
        fields=[FieldSpec.model_validate(f) for f in raw.get("fields") or []],
        steps=[StepDefinition.model_validate(s) for s in raw.get("steps") or []],
    )


@lru_cache(maxsize=None)
def _registry() -> dict[str, StepTable]:
    tables: dict[str, StepTable] = {}
    for path in sorted(_DATA_DIR.glob("*.json")):
        if path.stem == "plans":
            continue
        table = _load_flow(path)
        tables[table.name] = table
    return tables


def flow_names() -> list[str]:
    return list(_registry().keys())


def get_flow(name: str) -> StepTable:
    try:
        return _registry()[name]
    except KeyError:
        raise KeyError(f"Unknown flow: {name}") from None


def load_plans() -> list[dict[str, Any]]:
    raw = json.loads((_DATA_DIR / "plans.json").read_text(encoding="utf-8"))
    plans = raw.get("plans") if isinstance(raw, dict) else None
    return [p for p in plans or [] if isinstance(p, dict)]
