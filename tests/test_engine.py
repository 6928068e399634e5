"""Tests for the wizard controller in ngo_wizard.engine."""

import asyncio
from typing import Any

import pytest

from conftest import PNG_BYTES, data_url

from ngo_wizard import engine
from ngo_wizard.dispatcher import SubmissionDispatcher
from ngo_wizard.encoder import FileEncoder, SelectedFile, decode_data_url
from ngo_wizard.engine import WizardController
from ngo_wizard.flows import get_flow


class RecordingOperation:
    def __init__(self, result: Any = None, gate: asyncio.Event | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.result = result if result is not None else {"success": True, "data": {"id": "M-0001"}}
        self.gate = gate

    async def __call__(self, values: dict[str, Any]) -> Any:
        self.calls.append(values)
        if self.gate is not None:
            await self.gate.wait()
        return self.result


def controller(flow: str = "membership", operation: RecordingOperation | None = None) -> WizardController:
    op = operation or RecordingOperation()
    return WizardController(get_flow(flow), SubmissionDispatcher(op), FileEncoder(max_bytes=1024 * 1024))


def fill_and_advance(wizard: WizardController, steps: list[dict[str, Any]], upto: int) -> None:
    for step in steps[:upto]:
        for field, value in step.items():
            assert wizard.set_value(field, value)
        assert wizard.advance()


def fill(wizard: WizardController, values: dict[str, Any]) -> None:
    for field, value in values.items():
        wizard.set_value(field, value)


def test_fresh_state() -> None:
    wizard = controller()
    state = wizard.state
    assert state.current_step_index == 0
    assert state.errors == {}
    assert not state.is_submitting and not state.is_submitted
    assert state.values["name"] == "" and state.values["plan_id"] == 0


def test_blocked_advance_reports_required_field(membership_steps) -> None:
    wizard = controller()
    step0 = dict(membership_steps[0], gender="")
    fill(wizard, step0)

    assert not wizard.advance()
    assert wizard.current_step_index == 0
    assert wizard.state.errors["gender"] == ["Gender is required"]


def test_advance_reports_every_failing_field() -> None:
    wizard = controller()
    assert not wizard.advance()
    assert set(wizard.state.errors) == set(get_flow("membership").required_fields(0))


def test_advance_validates_only_current_step(membership_steps) -> None:
    wizard = controller()
    fill(wizard, membership_steps[0])
    assert wizard.advance()
    assert wizard.current_step_index == 1
    assert wizard.state.errors == {}


def test_advance_clears_stale_errors_of_next_step(membership_steps) -> None:
    wizard = controller()
    wizard.state.errors["mobile"] = ["Enter a valid 10-digit mobile number"]
    fill(wizard, membership_steps[0])
    assert wizard.advance()
    assert "mobile" not in wizard.state.errors


def test_retreat_keeps_values_and_errors(membership_steps) -> None:
    wizard = controller()
    fill_and_advance(wizard, membership_steps, 1)
    wizard.set_value("mobile", "12")
    assert not wizard.advance()
    before_values = dict(wizard.state.values)
    before_errors = {k: list(v) for k, v in wizard.state.errors.items()}

    assert wizard.retreat()
    assert wizard.current_step_index == 0
    assert wizard.state.values == before_values
    assert wizard.state.errors == before_errors


def test_retreat_clamps_at_first_step() -> None:
    wizard = controller()
    wizard.retreat()
    assert wizard.current_step_index == 0


def test_jump_only_backwards(membership_steps) -> None:
    wizard = controller()
    fill_and_advance(wizard, membership_steps, 2)
    assert wizard.current_step_index == 2

    assert not wizard.jump_to_completed_step(2)
    assert not wizard.jump_to_completed_step(3)
    assert wizard.current_step_index == 2

    assert wizard.jump_to_completed_step(0)
    assert wizard.current_step_index == 0
    assert not wizard.jump_to_completed_step(1)


def test_cross_field_error_reevaluated_when_other_field_changes(membership_steps) -> None:
    wizard = controller()
    fill_and_advance(wizard, membership_steps, 3)
    wizard.set_value("plan_id", 1)
    wizard.set_value("payment_mode", "CASH")
    assert not wizard.advance()
    assert wizard.state.errors["payment_image"] == ["Payment proof is required"]

    wizard.set_value("payment_mode", "")
    assert "payment_image" not in wizard.state.errors

    wizard.set_value("payment_mode", "CHEQUE")
    assert not wizard.advance()
    wizard.set_value("payment_image", data_url())
    assert "payment_image" not in wizard.state.errors


def test_changing_controlling_field_rechecks_dependents_on_passed_steps() -> None:
    wizard = controller("gallery")
    fill(wizard, {"type": "VIDEO", "category": "PRESS"})
    assert wizard.advance()
    wizard.set_value("video_url", "https://v.example.org/1")
    assert wizard.advance()
    assert wizard.state.errors == {}

    assert wizard.jump_to_completed_step(0)
    wizard.set_value("type", "IMAGE")
    assert wizard.state.errors == {"image": ["An image is required for image items"]}

    wizard.set_value("type", "VIDEO")
    assert wizard.state.errors == {}


def test_dependents_on_unvisited_steps_stay_unchecked() -> None:
    wizard = controller("gallery")
    wizard.set_value("type", "VIDEO")
    assert wizard.state.errors == {}
    assert wizard.state.furthest_passed_index == -1


def test_setting_value_does_not_validate_untouched_fields() -> None:
    wizard = controller()
    wizard.set_value("name", "A")
    assert wizard.state.errors == {}


def test_unknown_field_is_rejected() -> None:
    wizard = controller()
    assert not wizard.set_value("favourite_colour", "blue")
    assert "favourite_colour" not in wizard.state.values


@pytest.mark.asyncio
async def test_happy_path_submits_once_and_keeps_result(membership_steps) -> None:
    op = RecordingOperation()
    wizard = controller(operation=op)
    fill_and_advance(wizard, membership_steps, 3)
    fill(wizard, membership_steps[3])

    assert await wizard.submit()
    assert len(op.calls) == 1
    assert op.calls[0]["aadhaar"] == "123412341234"
    assert wizard.state.is_submitted
    assert not wizard.state.is_submitting
    assert wizard.state.result == {"id": "M-0001"}


@pytest.mark.asyncio
async def test_submit_only_from_last_step(membership_steps) -> None:
    op = RecordingOperation()
    wizard = controller(operation=op)
    fill(wizard, membership_steps[0])

    assert not await wizard.submit()
    assert op.calls == []
    assert not wizard.state.is_submitting


@pytest.mark.asyncio
async def test_submit_revalidates_earlier_steps(membership_steps) -> None:
    op = RecordingOperation()
    wizard = controller(operation=op)
    fill_and_advance(wizard, membership_steps, 3)
    fill(wizard, membership_steps[3])
    wizard.state.values["email"] = "broken"

    assert not await wizard.submit()
    assert op.calls == []
    assert wizard.current_step_index == 3
    assert wizard.state.errors["email"] == ["Invalid email address"]
    assert not wizard.state.is_submitting


@pytest.mark.asyncio
async def test_second_submit_while_in_flight_is_ignored(membership_steps) -> None:
    gate = asyncio.Event()
    op = RecordingOperation(gate=gate)
    wizard = controller(operation=op)
    fill_and_advance(wizard, membership_steps, 3)
    fill(wizard, membership_steps[3])

    first = asyncio.create_task(wizard.submit())
    await asyncio.sleep(0)
    assert wizard.state.is_submitting
    assert not await wizard.submit()
    assert not wizard.set_value("name", "Someone Else")

    gate.set()
    assert await first
    assert len(op.calls) == 1


@pytest.mark.asyncio
async def test_failed_submission_can_be_retried(membership_steps) -> None:
    op = RecordingOperation(result={"success": False, "error": "duplicate entry"})
    wizard = controller(operation=op)
    fill_and_advance(wizard, membership_steps, 3)
    fill(wizard, membership_steps[3])

    assert not await wizard.submit()
    state = wizard.state
    assert state.current_step_index == 3
    assert state.page_error == "duplicate entry"
    assert not state.is_submitting and not state.is_submitted
    assert "page_error" not in state.errors

    op.result = {"success": True, "data": {"id": "M-0002"}}
    assert await wizard.submit()
    assert len(op.calls) == 2
    assert state.page_error is None
    assert state.result == {"id": "M-0002"}


@pytest.mark.asyncio
async def test_backend_exception_does_not_escape(membership_steps) -> None:
    async def boom(values: dict[str, Any]) -> Any:
        raise RuntimeError("db gone")

    wizard = WizardController(get_flow("membership"), SubmissionDispatcher(boom))
    fill_and_advance(wizard, membership_steps, 3)
    fill(wizard, membership_steps[3])

    assert not await wizard.submit()
    assert wizard.state.page_error == "An unexpected error occurred"
    assert not wizard.state.is_submitting


@pytest.mark.asyncio
async def test_submitted_wizard_rejects_further_input(membership_steps) -> None:
    wizard = controller()
    fill_and_advance(wizard, membership_steps, 3)
    fill(wizard, membership_steps[3])
    assert await wizard.submit()

    assert not wizard.set_value("name", "Changed")
    assert not wizard.retreat()
    assert not await wizard.submit()
    assert not await wizard.attach_file("documents", SelectedFile.from_bytes("a.png", PNG_BYTES, "image/png"))
    assert wizard.state.values["name"] == "Asha Verma"


@pytest.mark.asyncio
async def test_attach_file_sets_field_to_previewable_data_url() -> None:
    wizard = controller()
    assert await wizard.attach_file("profile_picture", SelectedFile.from_bytes("me.png", PNG_BYTES, "image/png"))

    value = wizard.state.values["profile_picture"]
    assert decode_data_url(value) == ("image/png", PNG_BYTES)


@pytest.mark.asyncio
async def test_attach_file_clears_required_error() -> None:
    wizard = controller()
    wizard.state.errors["documents"] = ["This file is required"]
    assert await wizard.attach_file("documents", SelectedFile.from_bytes("id.png", PNG_BYTES, "image/png"))
    assert "documents" not in wizard.state.errors


@pytest.mark.asyncio
async def test_oversized_file_raises_notification_only() -> None:
    wizard = controller()
    wizard.set_value("documents", data_url())
    before = wizard.state.values["documents"]
    big = SelectedFile.from_bytes("scan.pdf", b"x" * (1024 * 1024 + 1), "application/pdf")

    assert not await wizard.attach_file("documents", big)
    assert wizard.state.values["documents"] == before
    assert "documents" not in wizard.state.errors
    assert engine.drain_notifications(wizard.state) == ["File too large: maximum file size is 1 MB"]
    assert wizard.state.notifications == []


@pytest.mark.asyncio
async def test_slow_superseded_encode_never_overwrites_newer() -> None:
    wizard = controller()
    release_a = asyncio.Event()

    async def read_a() -> bytes:
        await release_a.wait()
        return b"file-A"

    file_a = SelectedFile(filename="a.png", content_type="image/png", size=6, reader=read_a)
    file_b = SelectedFile.from_bytes("b.png", b"file-B", "image/png")

    task_a = asyncio.create_task(wizard.attach_file("profile_picture", file_a))
    await asyncio.sleep(0)
    assert await wizard.attach_file("profile_picture", file_b)

    release_a.set()
    assert not await task_a
    assert decode_data_url(wizard.state.values["profile_picture"])[1] == b"file-B"


@pytest.mark.asyncio
async def test_attach_to_non_file_field_is_rejected() -> None:
    wizard = controller()
    assert not await wizard.attach_file("name", SelectedFile.from_bytes("a.txt", b"hi"))
    assert wizard.state.values["name"] == ""


def test_apply_command_records_acceptance(membership_steps) -> None:
    table = get_flow("membership")
    state = engine.new_state(table, "s1")

    state.last_command = {"type": "set_values", "values": membership_steps[0]}
    engine.apply_command(state, table)
    assert state.accepted

    state.last_command = {"type": "jump", "index": 2}
    engine.apply_command(state, table)
    assert not state.accepted

    state.last_command = {"type": "advance"}
    engine.apply_command(state, table)
    assert state.accepted and state.current_step_index == 1

    state.last_command = {"type": "set_values", "values": {"nope": 1}}
    engine.apply_command(state, table)
    assert not state.accepted

    state.last_command = {"type": "explode"}
    engine.apply_command(state, table)
    assert not state.accepted
