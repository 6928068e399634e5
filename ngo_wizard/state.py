from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


class FormState(BaseModel):
    version: str = "1.0"
    flow_name: str

    session_id: str

    values: Dict[str, Any] = Field(default_factory=dict)
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    current_step_index: int = 0
    furthest_passed_index: int = -1

    is_submitting: bool = False
    is_submitted: bool = False
    page_error: Optional[str] = None
    notifications: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None

    encode_seq: Dict[str, int] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)

    last_command: Optional[Dict[str, Any]] = None
    accepted: bool = True
