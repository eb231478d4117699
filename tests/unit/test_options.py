from __future__ import annotations

import pytest
from pydantic import ValidationError

from reqflow.core.exceptions import ConfigError
from reqflow.orchestration.options import CacheOptions, EngineOptions, coerce_options


def test_defaults_defer_to_config() -> None:
    opts = EngineOptions()
    assert opts.cache is None
    assert opts.retry is None
    assert opts.timeout_s is None
    assert opts.enabled is True
    assert opts.rollback_on_error is True
    assert opts.dedupe is False


def test_zero_polling_means_off() -> None:
    assert EngineOptions(polling_s=0).polling_s is None
    assert EngineOptions(polling_s=2.5).polling_s == 2.5


def test_cache_option_helpers() -> None:
    opts = EngineOptions(cache=CacheOptions(ttl_s=60, key="todos"))
    assert opts.cache_key == "todos"
    assert opts.cache_ttl_s == 60.0
    assert EngineOptions(cache=True).cache_key is None


def test_coerce_from_mapping_and_overrides() -> None:
    opts = coerce_options({"retry": 2}, timeout_s=5)
    assert opts.retry == 2
    assert opts.timeout_s == 5.0

    base = EngineOptions(retry=1)
    assert coerce_options(base) is base
    assert coerce_options(base, retry=4).retry == 4
    assert coerce_options(None, enabled=False).enabled is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"retry": -1},
        {"timeout_s": 0},
        {"retry_delay_s": -0.5},
        {"polling_s": -1},
        {"cache": {"ttl_s": 0}},
    ],
)
def test_invalid_options_raise_config_error(kwargs: dict) -> None:
    with pytest.raises(ConfigError):
        coerce_options(**kwargs)


def test_options_are_frozen() -> None:
    opts = EngineOptions()
    with pytest.raises(ValidationError):
        opts.retry = 3  # type: ignore[misc]
