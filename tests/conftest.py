"""Shared fixtures for the B2 client tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from pytest_httpx import HTTPXMock
from stubs import ACCOUNT_ID, APPLICATION_KEY, authorize_account_data

from pyb2 import B2Client
from pyb2.auth import AUTHORIZE_ACCOUNT_URL


@pytest.fixture
def mock_authorize(httpx_mock: HTTPXMock) -> Callable[..., None]:
    """Register b2_authorize_account responses, one per token given."""

    def register(*tokens: str) -> None:
        for token in tokens or ("authToken",):
            httpx_mock.add_response(
                url=AUTHORIZE_ACCOUNT_URL,
                method="GET",
                json=authorize_account_data(token),
            )

    return register


@pytest.fixture
def b2() -> Iterator[B2Client]:
    """Create a B2Client for testing."""
    with B2Client(ACCOUNT_ID, APPLICATION_KEY) as client:
        yield client
