import pytest

from agentic_intake.core.errors import ConfigurationError, ModelCallError
from agentic_intake.core.retry import backoff_delays, retry_call, retrying

def test_backoff_doubles():
    assert backoff_delays(3, 0.5) == [0.5, 1.0]
    assert backoff_delays(1, 0.5) == []

def test_retries_then_succeeds():
    sleeps, calls = [], []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ModelCallError("timeout")
        return "ok"

    assert retry_call(flaky, attempts=3, base_delay=0.1, sleep=sleeps.append) == "ok"
    assert sleeps == [0.1, 0.2]

def test_gives_up_after_attempts():
    sleeps = []

    def down():
        raise ModelCallError("down")

    wrapped = retrying(down, attempts=3, base_delay=0.1, sleep=sleeps.append)
    with pytest.raises(ModelCallError):
        wrapped()
    assert len(sleeps) == 2

def test_non_retryable_errors_propagate_immediately():
    sleeps = []

    def broken():
        raise ConfigurationError("bad schema")

    with pytest.raises(ConfigurationError):
        retry_call(broken, attempts=3, sleep=sleeps.append)
    assert sleeps == []
