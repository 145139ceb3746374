"""Test configuration and fixtures."""

import os
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables BEFORE importing the package
os.environ["ENVIRONMENT"] = "test"

from scm_bitbucket.bitbucket import BitbucketScm
from scm_bitbucket.transport.executor import ScmResponse

SERVICE_TOKEN = "service-token"
REPO_UUID = "{de7d7695-1196-46a1-b87d-371b7b2945ab}"
SCM_URI = f"bitbucket.org:batman/{REPO_UUID}:master"


def make_response(status_code: int = 200, body: Any = None, text: str = "") -> ScmResponse:
    """Build an executor response."""
    return ScmResponse(status_code=status_code, body=body, text=text)


@pytest.fixture
def scm_config():
    return {
        "oauthClientId": "myclientid",
        "oauthClientSecret": "myclientsecret",
    }


@pytest.fixture
def executor():
    """Executor double; tests queue responses on run_command."""
    mock = MagicMock()
    mock.run_command = AsyncMock()
    mock.stats.return_value = {
        "requests": {
            "total": 1,
            "success": 1,
            "failure": 0,
            "timeouts": 0,
            "concurrent": 0,
            "averageTime": 3.0,
        },
        "breaker": {"isClosed": True, "state": "closed", "trips": 0},
    }
    return mock


@pytest.fixture
def token_manager():
    mock = MagicMock()
    mock.get = AsyncMock(return_value=SERVICE_TOKEN)
    return mock


@pytest.fixture
def scm(scm_config, executor, token_manager) -> BitbucketScm:
    return BitbucketScm(scm_config, executor=executor, token_manager=token_manager)
