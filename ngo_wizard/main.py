from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, HTTPException, UploadFile
from pydantic import BaseModel

from ngo_wizard import actions, engine
from ngo_wizard.config import config
from ngo_wizard.dispatcher import Operation, SubmissionDispatcher
from ngo_wizard.encoder import FileEncoder, FileTooLarge, SelectedFile
from ngo_wizard.flows import StepTable, flow_names, get_flow
from ngo_wizard.graph import run_command
from ngo_wizard.logging_config import setup_logging
from ngo_wizard.state import FormState
from ngo_wizard.storage import load_state, save_state

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    logger.info("%s %s ready (flows: %s)", config.APP_NAME, config.APP_VERSION, ", ".join(flow_names()))
    yield


app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION, lifespan=lifespan)

_encoder = FileEncoder()

# Flows that may be started directly; renewal starts from a membership lookup.
_OPEN_FLOWS = {"membership", "gallery"}


def _renewal_operation(state: FormState) -> Operation:
    async def submit(values: dict[str, Any]) -> dict[str, Any]:
        return await actions.submit_renewal_request({**values, "membership_id": state.context.get("membership_id")})

    return submit


def _dispatcher_for(state: FormState) -> SubmissionDispatcher:
    if state.flow_name == "membership":
        operation: Operation = actions.apply_membership
    elif state.flow_name == "renewal":
        operation = _renewal_operation(state)
    elif state.flow_name == "gallery":
        operation = actions.create_gallery_item
    else:
        raise HTTPException(status_code=404, detail=f"No submission handler for flow {state.flow_name}")
    return SubmissionDispatcher(operation, timeout=config.SUBMIT_TIMEOUT_SEC)


def _table(name: str) -> StepTable:
    try:
        return get_flow(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown flow: {name}")


def _load(session_id: str) -> FormState:
    try:
        return load_state(session_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Session not found")


def _respond(state: FormState) -> dict[str, Any]:
    table = _table(state.flow_name)
    notifications = engine.drain_notifications(state)
    save_state(state.session_id, state)
    return {
        "session_id": state.session_id,
        "flow": state.flow_name,
        "current_step": state.current_step_index,
        "step_label": table.step_label(state.current_step_index),
        "step_count": table.step_count,
        "values": state.values,
        "errors": state.errors,
        "page_error": state.page_error,
        "notifications": notifications,
        "is_submitting": state.is_submitting,
        "is_submitted": state.is_submitted,
        "result": state.result,
        "context": state.context,
        "accepted": state.accepted,
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/flows")
def flows() -> dict[str, Any]:
    return {"flows": [get_flow(name).describe() for name in flow_names()]}


@app.get("/flows/{name}")
def flow_detail(name: str) -> dict[str, Any]:
    return _table(name).describe()


@app.get("/plans")
def plans() -> dict[str, Any]:
    return {"plans": actions.list_plans()}


@app.post("/sessions")
def start(flow: str = "membership") -> dict[str, Any]:
    table = _table(flow)
    if flow not in _OPEN_FLOWS:
        raise HTTPException(status_code=400, detail=f"The {flow} flow cannot be started directly")
    state = engine.new_state(table, str(uuid.uuid4()))
    logger.info("Started %s session %s", flow, state.session_id)
    return _respond(state)


class LookupRequest(BaseModel):
    membership_number: str


@app.post("/renewal/lookup")
async def renewal_lookup(req: LookupRequest) -> dict[str, Any]:
    number = req.membership_number.strip()
    if len(number) < 5:
        raise HTTPException(status_code=422, detail="Invalid Membership Number")
    record = await actions.get_membership_by_number(number)
    if record is None:
        raise HTTPException(status_code=404, detail="No membership found with this number.")

    summary = actions.membership_summary(record)
    state = engine.new_state(
        _table("renewal"),
        str(uuid.uuid4()),
        context={"membership_id": record["id"], "membership": summary},
    )
    logger.info("Started renewal session %s for %s", state.session_id, summary["membership_number"])
    return _respond(state)


@app.get("/sessions/{session_id}")
def get_session(session_id: str) -> dict[str, Any]:
    return _respond(_load(session_id))


class ValuesRequest(BaseModel):
    values: dict[str, Any]


class JumpRequest(BaseModel):
    index: int


@app.post("/sessions/{session_id}/values")
def set_values(session_id: str, req: ValuesRequest) -> dict[str, Any]:
    state = run_command(_load(session_id), {"type": "set_values", "values": req.values})
    return _respond(state)


@app.post("/sessions/{session_id}/advance")
def advance(session_id: str) -> dict[str, Any]:
    return _respond(run_command(_load(session_id), {"type": "advance"}))


@app.post("/sessions/{session_id}/retreat")
def retreat(session_id: str) -> dict[str, Any]:
    return _respond(run_command(_load(session_id), {"type": "retreat"}))


@app.post("/sessions/{session_id}/jump")
def jump(session_id: str, req: JumpRequest) -> dict[str, Any]:
    return _respond(run_command(_load(session_id), {"type": "jump", "index": req.index}))


@app.post("/sessions/{session_id}/submit")
async def submit(session_id: str) -> dict[str, Any]:
    state = run_command(_load(session_id), {"type": "submit"})
    save_state(session_id, state)
    if not state.accepted:
        return _respond(state)

    table = _table(state.flow_name)
    outcome = await _dispatcher_for(state).dispatch(engine.submission_values(state, table))

    # Reload: uploads finishing during the call may have touched the session.
    state = _load(session_id)
    engine.finish_submit(state, table, outcome)
    state.accepted = outcome.success
    return _respond(state)


@app.post("/sessions/{session_id}/files/{field}")
async def upload(session_id: str, field: str, file: UploadFile = File(...)) -> dict[str, Any]:
    state = _load(session_id)
    table = _table(state.flow_name)
    spec = table.fields.get(field)
    if spec is None or spec.type != "file":
        raise HTTPException(status_code=400, detail=f"{field} is not a file field")
    if engine.is_locked(state):
        state.accepted = False
        return _respond(state)

    selected = SelectedFile(filename=file.filename or "", content_type=file.content_type, size=file.size, reader=file.read)
    try:
        _encoder.check_size(selected)
    except FileTooLarge as exc:
        engine.notify(state, engine.file_too_large_message(exc))
        state.accepted = False
        return _respond(state)

    seq = _encoder.begin(state, field)
    save_state(session_id, state)
    try:
        data_url = await _encoder.encode(selected)
    except FileTooLarge as exc:
        state = _load(session_id)
        if _encoder.is_current(state, field, seq):
            engine.notify(state, engine.file_too_large_message(exc))
        state.accepted = False
        return _respond(state)

    state = _load(session_id)
    state.accepted = engine.commit_file(state, table, field, seq, data_url)
    return _respond(state)
