from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from reqflow.core.config import Config  # noqa: E402
from reqflow.orchestration.context import EngineContext  # noqa: E402
from tests.unit._clock import ManualClock  # noqa: E402


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def test_config(monkeypatch: pytest.MonkeyPatch) -> Config:
    """Config isolated from the developer's environment."""

    for key in [k for k in os.environ if k.startswith("REQFLOW_")]:
        monkeypatch.delenv(key, raising=False)
    return Config()


@pytest.fixture()
def ctx(test_config: Config, clock: ManualClock) -> EngineContext:
    """Fresh, isolated engine context driven by the manual clock."""

    return EngineContext.create(test_config, clock=clock)
