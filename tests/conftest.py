from __future__ import annotations

import logging
import os
import sys
import tempfile
from collections.abc import Generator, Iterator
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def configure_test_logging() -> Generator[None, None, None]:
    """Configure structlog for test environment.

    This fixture runs automatically for all tests to ensure logging
    is properly configured to output to stderr (not stdout) and
    suppress verbose log output during tests.
    """
    from sdkquery.logging import configure_logging

    configure_logging(level=logging.WARNING)
    yield


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for test files.

    Also saves and restores the current working directory to prevent
    tests that use os.chdir() from affecting other tests.
    """
    original_cwd = os.getcwd()
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
    os.chdir(original_cwd)


@pytest.fixture
def clean_env(temp_dir: Path) -> Generator[None, None, None]:
    """Remove all SDKQUERY_ environment variables for clean testing.

    HOME points at an empty directory so a developer's user config file
    does not leak into configuration tests.
    """
    original_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("SDKQUERY_"):
            del os.environ[key]
    os.environ["HOME"] = str(temp_dir / "home")
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def sample_config_yaml() -> str:
    """Return sample sdkquery.yaml content for testing."""
    return """
engine:
  max_depth: 64

validation:
  expression_keys:
    - argument
    - path

verbosity: "info"
"""


@pytest.fixture
def waiters_model() -> dict:
    """Return a small waiters definition with valid and invalid expressions."""
    return {
        "version": 2,
        "waiters": {
            "InstanceRunning": {
                "delay": 15,
                "operation": "DescribeInstances",
                "maxAttempts": 40,
                "acceptors": [
                    {
                        "expected": "running",
                        "matcher": "pathAll",
                        "state": "success",
                        "argument": "Reservations[].Instances[].State.Name",
                    },
                    {
                        "expected": "terminated",
                        "matcher": "pathAny",
                        "state": "failure",
                        "argument": "Reservations[].Instances[.State.Name",
                    },
                    {
                        "expected": "InvalidInstanceID.NotFound",
                        "matcher": "error",
                        "state": "retry",
                    },
                ],
            },
        },
    }


@pytest.fixture
def shallow_stack() -> Generator[None, None, None]:
    """Leave only ~150 interpreter frames above the test for recursion.

    Every nesting level costs the parser and evaluator several frames, so
    deep expressions run out of stack at a predictable point regardless of
    the interpreter version.
    """
    original_limit = sys.getrecursionlimit()
    depth = 0
    frame = sys._getframe()
    while frame is not None:
        depth += 1
        frame = frame.f_back
    sys.setrecursionlimit(depth + 150)
    yield
    sys.setrecursionlimit(original_limit)
