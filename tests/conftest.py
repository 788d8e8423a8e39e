"""
retryguard Test Configuration

Shared fixtures: a recording executor that skips real delays, and
operation doubles that fail a set number of times.
"""

import os
import sys

# Add project root to path FIRST
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from typing import List, Optional

import pytest

from retryguard.executor import AsyncioExecutor, CancellationToken
from retryguard.policy import RetryPolicy
from retryguard.supervisor import RetrySupervisor
from retryguard.task_tracker import TaskTracker


class RecordingExecutor(AsyncioExecutor):
    """AsyncioExecutor that records every delay and only yields instead of sleeping."""

    def __init__(self, on_sleep=None):
        super().__init__(tracker=TaskTracker("test"))
        self.sleeps: List[float] = []
        self.on_sleep = on_sleep

    async def sleep(self, seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))
        await super().sleep(0, cancel_token)


class FlakyOperation:
    """Async callable that raises for the first `failures` calls, then returns `value`."""

    def __init__(self, failures: int, value=42, error: Optional[Exception] = None):
        self.failures = failures
        self.value = value
        self.error = error or RuntimeError("boom")
        self.calls = 0
        self.__name__ = "flaky"

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def supervisor(executor):
    return RetrySupervisor(policy=RetryPolicy(max_attempts=3, delay=0.2), executor=executor)


@pytest.fixture
def flaky():
    return FlakyOperation


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def clean_env(monkeypatch):
    """Strip RETRYGUARD_* vars, and drop any a test's .env file added."""
    for key in list(os.environ):
        if key.startswith("RETRYGUARD_"):
            monkeypatch.delenv(key, raising=False)
    yield monkeypatch
    for key in list(os.environ):
        if key.startswith("RETRYGUARD_"):
            del os.environ[key]
