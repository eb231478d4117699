"""reqflow.core.types

Lightweight dataclasses for the observable state.

Pydantic models own configuration; dataclasses keep the hot path lean. Every
snapshot is frozen: listeners receive a value, never a live reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final


class EngineStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    FAILED = "failed"


ALLOWED_TRANSITIONS: Final[dict[EngineStatus, set[EngineStatus]]] = {
    EngineStatus.IDLE: {EngineStatus.LOADING},
    # LOADING -> LOADING is supersession (refetch or poll tick mid-flight);
    # LOADING -> IDLE is an explicit abort.
    EngineStatus.LOADING: {EngineStatus.LOADING, EngineStatus.SUCCESS, EngineStatus.FAILED, EngineStatus.IDLE},
    EngineStatus.SUCCESS: {EngineStatus.LOADING},
    EngineStatus.FAILED: {EngineStatus.LOADING},
}


def check_transition(current: EngineStatus, new: EngineStatus) -> None:
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition {current} -> {new}")


@dataclass(frozen=True, slots=True)
class RequestState:
    data: Any = None
    loading: bool = False
    error: BaseException | None = None
    status: EngineStatus = EngineStatus.IDLE


@dataclass(frozen=True, slots=True)
class OverlayState:
    committed: Any = None
    pending: Any = None
    active: bool = False

    @property
    def visible(self) -> Any:
        return self.pending if self.active else self.committed


@dataclass(frozen=True, slots=True)
class MutationState:
    data: Any = None
    optimistic_data: Any = None
    loading: bool = False
    error: BaseException | None = None
    active: bool = False
    status: EngineStatus = EngineStatus.IDLE


@dataclass(frozen=True, slots=True)
class ActionState:
    data: Any = None
    error: BaseException | None = None
    pending: bool = False
