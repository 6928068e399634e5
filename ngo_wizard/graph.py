from langgraph.graph import END, StateGraph

from ngo_wizard import engine
from ngo_wizard.flows import get_flow
from ngo_wizard.state import FormState


def guard(state: FormState) -> FormState:
    command = state.last_command or {}
    if command.get("type") not in engine.COMMANDS:
        state.accepted = False
        state.last_command = None
        return state
    if engine.is_locked(state):
        # Submitted sessions are read-only and an in-flight submission blocks a second one.
        state.accepted = False
        state.last_command = None
    return state


def route(state: FormState) -> str:
    return "mutate" if state.last_command else END


def mutate(state: FormState) -> FormState:
    return engine.apply_command(state, get_flow(state.flow_name))


builder = StateGraph(FormState)
builder.add_node("guard", guard)
builder.add_node("mutate", mutate)

builder.set_entry_point("guard")
builder.add_conditional_edges("guard", route, {"mutate": "mutate", END: END})
builder.add_edge("mutate", END)

wizard_graph = builder.compile()


def run_command(state: FormState, command: dict) -> FormState:
    state.last_command = command
    state.accepted = True
    result = wizard_graph.invoke(state)
    next_state = result if isinstance(result, FormState) else FormState.model_validate(result)
    next_state.last_command = None
    return next_state
