"""Test fixtures and utilities."""

import json
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
from litestar.testing import AsyncTestClient

from ccdeploy.config import Config
from ccdeploy.server import create_app
from ccdeploy.service import DeploymentService

from fakes import SEED_PHRASE, FakeClock, FakeConnector, FakeNode

DATA_DIR = Path(__file__).parent / "data"


@pytest.fixture
def config() -> Config:
    """Create a test configuration."""
    return Config(log_level="DEBUG", finalization_timeout=10.0, poll_interval=1.0)


@pytest.fixture
def seed_phrase() -> str:
    return SEED_PHRASE


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def connector(node: FakeNode) -> FakeConnector:
    return FakeConnector(node)


@pytest.fixture
def payload_json() -> str:
    """Credential deployment payload whose key 0 belongs to SEED_PHRASE on testnet."""
    return (DATA_DIR / "credential_deployment.json").read_text()


@pytest.fixture
def payload(payload_json: str) -> dict[str, Any]:
    result: dict[str, Any] = json.loads(payload_json)
    return result


@pytest.fixture
def credential_json(payload: dict[str, Any]) -> dict[str, Any]:
    """The unsigned credential embedded in the payload, parsed."""
    result: dict[str, Any] = json.loads(payload["unsignedCdiStr"])
    return result


@pytest.fixture
def expected() -> dict[str, Any]:
    """Independently computed key, digest, signature and hash for the payload."""
    result: dict[str, Any] = json.loads(
        (DATA_DIR / "credential_deployment_expected.json").read_text()
    )
    return result


@pytest.fixture
def golden_transaction() -> bytes:
    return bytes.fromhex((DATA_DIR / "credential_deployment_signed.hex").read_text().strip())


@pytest.fixture
def account_keys() -> dict[str, Any]:
    result: dict[str, Any] = json.loads((DATA_DIR / "account_keys.json").read_text())
    return result


@pytest.fixture
def service(config: Config, connector: FakeConnector, clock: FakeClock) -> DeploymentService:
    return DeploymentService(config, connector=connector, clock=clock)


@pytest.fixture
async def client(service: DeploymentService) -> AsyncGenerator[AsyncTestClient, None]:
    """Create a test client."""
    app = create_app(service=service)
    async with AsyncTestClient(app) as client:
        yield client
