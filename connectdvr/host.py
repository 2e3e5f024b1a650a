"""
Boundary between the plugin core and the automation host.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

LOG = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    """Connectivity indicator shown by the host."""

    UNKNOWN = "unknown"
    CONNECTING = "connecting"
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"
    DISCONNECTED = "disconnected"


ActionCallback = Callable[[Dict[str, Any]], Any]
FeedbackCallback = Callable[[Dict[str, Any]], Any]


@dataclass
class ActionDefinition:
    name: str
    callback: ActionCallback
    options: List[dict] = field(default_factory=list)
    description: Optional[str] = None

    def describe(self) -> dict:
        return {"name": self.name, "description": self.description, "options": list(self.options)}


@dataclass
class FeedbackDefinition:
    name: str
    type: str
    callback: FeedbackCallback
    options: List[dict] = field(default_factory=list)
    description: Optional[str] = None
    default_style: Dict[str, Any] = field(default_factory=dict)

    def describe(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "options": list(self.options),
            "defaultStyle": dict(self.default_style),
        }


@dataclass
class VariableDefinition:
    variable_id: str
    name: str


class HostAdapter(Protocol):
    """Calls the plugin core makes into its host."""

    def update_status(self, status: ConnectionStatus, message: Optional[str] = None) -> None: ...

    def set_variable_definitions(self, variables: List[VariableDefinition]) -> None: ...

    def set_variable_values(self, values: Dict[str, str]) -> None: ...

    def set_action_definitions(self, actions: Dict[str, ActionDefinition]) -> None: ...

    def set_feedback_definitions(self, feedbacks: Dict[str, FeedbackDefinition]) -> None: ...

    def check_feedbacks(self, *feedback_ids: str) -> None: ...


class LocalHost:
    """
    In-process host that keeps everything the plugin publishes.

    Used by the control API and by tests.
    """

    def __init__(self) -> None:
        self.status = ConnectionStatus.UNKNOWN
        self.status_message: Optional[str] = None
        self.variable_definitions: List[VariableDefinition] = []
        self.variables: Dict[str, str] = {}
        self.actions: Dict[str, ActionDefinition] = {}
        self.feedbacks: Dict[str, FeedbackDefinition] = {}
        self.checked_feedbacks: List[str] = []
        self.status_history: List[ConnectionStatus] = []

    def update_status(self, status: ConnectionStatus, message: Optional[str] = None) -> None:
        if status != self.status or message != self.status_message:
            LOG.info("Status %s%s", status.value, f" ({message})" if message else "")
        self.status = status
        self.status_message = message
        self.status_history.append(status)

    def set_variable_definitions(self, variables: List[VariableDefinition]) -> None:
        self.variable_definitions = list(variables)

    def set_variable_values(self, values: Dict[str, str]) -> None:
        self.variables.update(values)

    def set_action_definitions(self, actions: Dict[str, ActionDefinition]) -> None:
        self.actions = dict(actions)

    def set_feedback_definitions(self, feedbacks: Dict[str, FeedbackDefinition]) -> None:
        self.feedbacks = dict(feedbacks)

    def check_feedbacks(self, *feedback_ids: str) -> None:
        ids = list(feedback_ids) or list(self.feedbacks)
        self.checked_feedbacks.extend(ids)

    def evaluate_feedback(self, feedback_id: str, options: Optional[Dict[str, Any]] = None) -> Any:
        definition = self.feedbacks.get(feedback_id)
        if definition is None:
            raise KeyError(feedback_id)
        return definition.callback(dict(options or {}))

    async def run_action(self, action_id: str, options: Optional[Dict[str, Any]] = None) -> Any:
        definition = self.actions.get(action_id)
        if definition is None:
            raise KeyError(action_id)
        result = definition.callback(dict(options or {}))
        if inspect.isawaitable(result):
            result = await result
        return result
