from __future__ import annotations

import logging
from typing import Any

from ngo_wizard.dispatcher import Outcome, SubmissionDispatcher
from ngo_wizard.encoder import FileEncoder, FileTooLarge, SelectedFile
from ngo_wizard.flows import StepTable
from ngo_wizard.state import FormState
from ngo_wizard.validation import dependents_of, validate_fields

logger = logging.getLogger(__name__)

COMMANDS = {"set_values", "advance", "retreat", "jump", "submit"}


def new_state(table: StepTable, session_id: str, context: dict[str, Any] | None = None) -> FormState:
    return FormState(
        flow_name=table.name,
        session_id=session_id,
        values=table.defaults(),
        context=dict(context or {}),
    )


def is_locked(state: FormState) -> bool:
    return state.is_submitting or state.is_submitted


def notify(state: FormState, message: str) -> None:
    state.notifications.append(message)


def drain_notifications(state: FormState) -> list[str]:
    pending = list(state.notifications)
    state.notifications.clear()
    return pending


def set_value(state: FormState, table: StepTable, field: str, value: Any) -> bool:
    if is_locked(state):
        logger.debug("Ignoring %s: session %s no longer accepts input", field, state.session_id)
        return False
    if field not in table.fields:
        logger.debug("Ignoring unknown field %s for flow %s", field, table.name)
        return False
    state.values[field] = value
    _revalidate_touched(state, table, field)
    return True


def set_values(state: FormState, table: StepTable, values: dict[str, Any]) -> bool:
    if is_locked(state):
        return False
    unknown = [k for k in values if k not in table.fields]
    if unknown:
        logger.debug("Rejecting unknown fields %s for flow %s", unknown, table.name)
        return False
    for field, value in values.items():
        set_value(state, table, field, value)
    return True


def _was_visited(state: FormState, table: StepTable, field: str) -> bool:
    step = table.step_of(field)
    return step is not None and step <= state.furthest_passed_index


def _revalidate_touched(state: FormState, table: StepTable, field: str) -> None:
    # Fields on steps the user has not passed yet stay unchecked unless they already carry an error.
    touched = [field] if field in state.errors else []
    touched += [
        f for f in dependents_of(table.fields, field)
        if f in state.errors or _was_visited(state, table, f)
    ]
    if touched:
        validate_fields(table.fields, state.values, touched, state.errors)


def advance(state: FormState, table: StepTable) -> bool:
    if is_locked(state):
        return False
    current = state.current_step_index
    if not validate_fields(table.fields, state.values, table.required_fields(current), state.errors):
        return False
    state.furthest_passed_index = max(state.furthest_passed_index, current)

    nxt = min(current + 1, table.last_index)
    if nxt != current:
        for f in table.required_fields(nxt):
            state.errors.pop(f, None)
    state.current_step_index = nxt
    return True


def retreat(state: FormState) -> bool:
    if is_locked(state):
        return False
    state.current_step_index = max(state.current_step_index - 1, 0)
    return True


def jump_to_completed_step(state: FormState, index: int) -> bool:
    if is_locked(state):
        return False
    if index < 0 or index >= state.current_step_index:
        return False
    state.current_step_index = index
    return True


def begin_submit(state: FormState, table: StepTable) -> bool:
    """Validate every field and enter the submitting state.

    Only allowed from the last step; a second call while a submission is in
    flight is rejected.
    """
    if is_locked(state):
        return False
    if state.current_step_index != table.last_index:
        return False

    state.page_error = None
    if not validate_fields(table.fields, state.values, table.all_fields, state.errors):
        return False
    state.is_submitting = True
    return True


def submission_values(state: FormState, table: StepTable) -> dict[str, Any]:
    return {f: state.values.get(f) for f in table.all_fields}


def finish_submit(state: FormState, table: StepTable, outcome: Outcome) -> None:
    state.is_submitting = False
    if outcome.success:
        state.is_submitted = True
        state.result = dict(outcome.data or {})
        state.page_error = None
        logger.info("Session %s (%s) submitted", state.session_id, state.flow_name)
        return

    state.current_step_index = table.last_index
    state.page_error = outcome.error
    logger.info("Session %s (%s) submission failed: %s", state.session_id, state.flow_name, outcome.error)


def commit_file(state: FormState, table: StepTable, field: str, seq: int, data_url: str) -> bool:
    if state.is_submitted:
        return False
    if not FileEncoder.commit(state, field, seq, data_url):
        return False
    _revalidate_touched(state, table, field)
    return True


def apply_command(state: FormState, table: StepTable) -> FormState:
    command = state.last_command or {}
    kind = command.get("type")

    if kind == "set_values":
        values = command.get("values")
        state.accepted = isinstance(values, dict) and set_values(state, table, values)
    elif kind == "advance":
        state.accepted = advance(state, table)
    elif kind == "retreat":
        state.accepted = retreat(state)
    elif kind == "jump":
        index = command.get("index")
        state.accepted = isinstance(index, int) and jump_to_completed_step(state, index)
    elif kind == "submit":
        state.accepted = begin_submit(state, table)
    else:
        state.accepted = False
    return state


class WizardController:
    """Owns one FormState and drives it through the wizard."""

    def __init__(
        self,
        table: StepTable,
        dispatcher: SubmissionDispatcher,
        encoder: FileEncoder | None = None,
        state: FormState | None = None,
        session_id: str = "local",
    ) -> None:
        self.table = table
        self.dispatcher = dispatcher
        self.encoder = encoder or FileEncoder()
        self.state = state or new_state(table, session_id)

    @property
    def current_step_index(self) -> int:
        return self.state.current_step_index

    def set_value(self, field: str, value: Any) -> bool:
        return set_value(self.state, self.table, field, value)

    def advance(self) -> bool:
        return advance(self.state, self.table)

    def retreat(self) -> bool:
        return retreat(self.state)

    def jump_to_completed_step(self, index: int) -> bool:
        return jump_to_completed_step(self.state, index)

    async def submit(self) -> bool:
        if not begin_submit(self.state, self.table):
            return False
        outcome = await self.dispatcher.dispatch(submission_values(self.state, self.table))
        finish_submit(self.state, self.table, outcome)
        return outcome.success

    async def attach_file(self, field: str, file: SelectedFile) -> bool:
        spec = self.table.fields.get(field)
        if spec is None or spec.type != "file" or is_locked(self.state):
            return False
        try:
            self.encoder.check_size(file)
        except FileTooLarge as exc:
            notify(self.state, file_too_large_message(exc))
            return False

        seq = self.encoder.begin(self.state, field)
        try:
            data_url = await self.encoder.encode(file)
        except FileTooLarge as exc:
            if self.encoder.is_current(self.state, field, seq):
                notify(self.state, file_too_large_message(exc))
            return False
        return commit_file(self.state, self.table, field, seq, data_url)


def file_too_large_message(exc: FileTooLarge) -> str:
    limit_mb = exc.limit / (1024 * 1024)
    return f"File too large: maximum file size is {limit_mb:g} MB"
