"""Node results and tool control results.

Every node handler returns one of:
- StateUpdate(patch): apply the patch, next node comes from ``transition``
- Redirect(target, patch): apply the patch, jump to ``target``
- Suspend(patch, payload): apply the patch, persist and stop until resumed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .state import HandoffRequest


@dataclass(frozen=True, slots=True)
class StateUpdate:
    patch: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Redirect:
    target: Any  # TaskNode; typed loosely to avoid a routing import cycle
    patch: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Suspend:
    patch: Dict[str, Any]
    payload: Dict[str, Any]


NodeResult = Union[StateUpdate, Redirect, Suspend]


@dataclass(frozen=True, slots=True)
class ControlResult:
    """Tool return value that carries a state patch and/or a handoff.

    ``content`` becomes the tool observation; ``patch`` is merged into the task
    state together with the patches of the other calls of the same round.
    """

    content: str
    patch: Dict[str, Any] = field(default_factory=dict)
    handoff: Optional[HandoffRequest] = None
