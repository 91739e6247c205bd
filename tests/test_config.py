"""Tests for rxapplog.config - typed configuration and retry policy."""

import pytest

from rxapplog import LogLevel, PipelineConfig, RetryPolicy, WSConnectionConfig


def test_pipeline_config_defaults():
    config = PipelineConfig()
    assert config.batch_size == 10
    assert config.flush_interval == 5.0
    assert config.min_level is LogLevel.INFO
    assert config.source == "frontend"
    assert config.retry == RetryPolicy()


def test_pipeline_config_parses_level_name():
    assert PipelineConfig(min_level="WARNING").min_level is LogLevel.WARN


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"flush_interval": -1.0},
        {"sink_timeout": 0},
        {"min_level": "loud"},
    ],
)
def test_pipeline_config_rejects_invalid(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_retries": -1},
        {"base_delay": -0.5},
        {"backoff_factor": 0.5},
        {"jitter": 1.5},
    ],
)
def test_retry_policy_rejects_invalid(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_retry_delay_grows_until_cap():
    policy = RetryPolicy(jitter=0.0, max_delay=60.0)
    assert policy.get_delay(0, 5.0) == 5.0
    assert policy.get_delay(1, 5.0) == 10.0
    assert policy.get_delay(2, 5.0) == 20.0
    assert policy.get_delay(10, 5.0) == 60.0


def test_retry_delay_explicit_base():
    policy = RetryPolicy(base_delay=1.0, jitter=0.0)
    assert policy.get_delay(3, 5.0) == 8.0


def test_retry_delay_jitter_bounds():
    policy = RetryPolicy(jitter=0.1)
    for _ in range(50):
        assert 9.0 <= policy.get_delay(1, 5.0) <= 11.0


def test_retry_exhausted():
    assert not RetryPolicy().exhausted(1000)
    policy = RetryPolicy(max_retries=2)
    assert not policy.exhausted(2)
    assert policy.exhausted(3)


def test_ws_connection_url():
    assert WSConnectionConfig("localhost", 8765).url == "ws://localhost:8765/"
    assert WSConnectionConfig("::1", 8765, "/logs").url == "ws://[::1]:8765/logs"
