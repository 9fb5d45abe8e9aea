"""Pytest configuration and shared fixtures.

The beacon is never contacted over the network: tests that need an anchor
use an httpx.MockTransport, and the default settings disable anchoring.
"""

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import ASGITransport, AsyncClient

from dlvr.api import create_app
from dlvr.core.config import DRAND_QUICKNET_CHAIN_HASH, BeaconSettings, Settings
from dlvr.services.anchor import TemporalAnchor
from dlvr.services.lifecycle import DeliveryOrchestrator
from dlvr.services.signing import SignatureProvider, private_key_to_jwk

BEACON_ROUND = {
    "round": 12345678,
    "randomness": "a4f3c2e1b0d9f8e7a6b5c4d3e2f1a0b9c8d7e6f5a4b3c2d1e0f9a8b7c6d5e4f3",
    "signature": "8f1e2d3c4b5a69788796a5b4c3d2e1f0",
}


# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def settings() -> Settings:
    """Development settings with anchoring disabled."""
    return Settings(
        environment="dev",
        sender_id="org-test",
        public_base_url="https://dlvr.test",
        beacon=BeaconSettings(enabled=False),
    )


# ---------------------------------------------------------------------------
# Beacon fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def beacon_round() -> dict[str, Any]:
    return dict(BEACON_ROUND)


@pytest.fixture
def make_anchor() -> Callable[..., TemporalAnchor]:
    """Build a TemporalAnchor whose requests are answered by a handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> TemporalAnchor:
        return TemporalAnchor(
            base_url="https://beacon.test",
            chain_hash=DRAND_QUICKNET_CHAIN_HASH,
            timeout=1.0,
            transport=httpx.MockTransport(handler),
        )

    return _make


@pytest.fixture
def anchor(make_anchor, beacon_round) -> TemporalAnchor:
    """Anchor backed by a beacon that always returns the same round."""
    return make_anchor(lambda request: httpx.Response(200, json=beacon_round))


@pytest.fixture
def unavailable_anchor(make_anchor) -> TemporalAnchor:
    """Anchor whose beacon refuses connections."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return make_anchor(handler)


# ---------------------------------------------------------------------------
# Signing fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def persistent_jwk() -> str:
    """A P-256 private key in JWK form, as stored in DLVR_SIGNING__KEY_JWK."""
    return json.dumps(private_key_to_jwk(ec.generate_private_key(ec.SECP256R1())))


@pytest.fixture
async def provider() -> SignatureProvider:
    """Loaded provider with an ephemeral key."""
    signer = SignatureProvider()
    await signer.load()
    return signer


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def orchestrator(settings, anchor) -> DeliveryOrchestrator:
    """Initialized orchestrator anchored to the mock beacon."""
    dlvr = DeliveryOrchestrator(settings, anchor=anchor)
    return await dlvr.initialize()


# ---------------------------------------------------------------------------
# API client fixture (in-process testing via ASGI transport)
# ---------------------------------------------------------------------------
@pytest.fixture
def test_app(settings, orchestrator):
    """Fresh application sharing the orchestrator fixture."""
    return create_app(settings, orchestrator)


@pytest.fixture
async def api_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
