"""Pytest configuration and shared fixtures.

The package lives under ``paanj/src``.  When pytest runs without the
package installed, that directory and the repository root are added to
``sys.path`` so that ``paanj`` and ``tests.helpers`` both import.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

ROOT = Path(__file__).resolve().parents[1]

for _path in (ROOT, ROOT / "paanj" / "src"):
    _path_str = str(_path)
    if _path_str not in sys.path:
        sys.path.insert(0, _path_str)

from tests.helpers.fake_backend import FakeBackend  # noqa: E402
from tests.helpers.fake_streams import FakeConnector  # noqa: E402


@pytest_asyncio.fixture
async def backend():
    """A running fake REST backend; ``backend.url`` is its base URL."""
    fake = FakeBackend()
    server = TestServer(fake.app)
    await server.start_server()
    fake.url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
