"""Tests for the drand temporal anchor.

The beacon is simulated with httpx.MockTransport; every failure mode must
yield None rather than an exception.
"""

import json
import logging

import httpx
import pytest

from dlvr.core.config import DRAND_QUICKNET_CHAIN_HASH, BeaconSettings
from dlvr.services.anchor import AnchorRound, TemporalAnchor


class TestFetchLatest:
    """Successful beacon responses."""

    async def test_returns_round(self, anchor, beacon_round):
        """The latest round is parsed into an AnchorRound."""
        result = await anchor.fetch_latest()
        assert isinstance(result, AnchorRound)
        assert result.round == beacon_round["round"]
        assert result.randomness == beacon_round["randomness"]
        assert result.signature == beacon_round["signature"]
        assert result.chain_hash == DRAND_QUICKNET_CHAIN_HASH

    async def test_requests_latest_round_of_chain(self, make_anchor, beacon_round):
        """The request targets the configured chain's latest round."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=beacon_round)

        await make_anchor(handler).fetch_latest()
        assert seen == [f"https://beacon.test/{DRAND_QUICKNET_CHAIN_HASH}/public/latest"]

    async def test_round_as_string_is_accepted(self, make_anchor, beacon_round):
        """A numeric string round is coerced to int."""
        anchor = make_anchor(lambda r: httpx.Response(200, json={**beacon_round, "round": "42"}))
        result = await anchor.fetch_latest()
        assert result.round == 42

    def test_round_dict_form(self, beacon_round):
        """AnchorRound survives its dict form."""
        anchor_round = AnchorRound(chain_hash=DRAND_QUICKNET_CHAIN_HASH, **beacon_round)
        assert AnchorRound.from_dict(anchor_round.to_dict()) == anchor_round


class TestFailOpen:
    """Beacon failures are logged and reported as None."""

    async def test_connection_error(self, unavailable_anchor, caplog):
        """Connection errors log a warning and return None."""
        with caplog.at_level(logging.WARNING, logger="dlvr.services.anchor"):
            assert await unavailable_anchor.fetch_latest() is None
        assert "Beacon unavailable" in caplog.text

    async def test_timeout(self, make_anchor):
        """Timeouts return None."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        assert await make_anchor(handler).fetch_latest() is None

    @pytest.mark.parametrize("status_code", [404, 500, 503])
    async def test_non_200(self, make_anchor, status_code):
        """Non-200 responses return None."""
        anchor = make_anchor(lambda r: httpx.Response(status_code, json={"error": "nope"}))
        assert await anchor.fetch_latest() is None

    async def test_non_json_body(self, make_anchor):
        """An HTML body returns None."""
        anchor = make_anchor(lambda r: httpx.Response(200, content=b"<html>oops</html>"))
        assert await anchor.fetch_latest() is None

    async def test_json_array_body(self, make_anchor):
        """A JSON body that is not an object returns None."""
        anchor = make_anchor(lambda r: httpx.Response(200, content=json.dumps([1, 2]).encode()))
        assert await anchor.fetch_latest() is None

    @pytest.mark.parametrize("missing", ["round", "randomness", "signature"])
    async def test_missing_field(self, make_anchor, beacon_round, missing, caplog):
        """A missing beacon field is named in the warning."""
        body = {k: v for k, v in beacon_round.items() if k != missing}
        anchor = make_anchor(lambda r: httpx.Response(200, json=body))
        with caplog.at_level(logging.WARNING, logger="dlvr.services.anchor"):
            assert await anchor.fetch_latest() is None
        assert missing in caplog.text

    async def test_invalid_round(self, make_anchor, beacon_round):
        """A non-numeric round returns None."""
        anchor = make_anchor(lambda r: httpx.Response(200, json={**beacon_round, "round": "abc"}))
        assert await anchor.fetch_latest() is None


class TestDisabled:
    async def test_no_request_when_disabled(self):
        """A disabled anchor never contacts the beacon."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        anchor = TemporalAnchor.from_settings(
            BeaconSettings(enabled=False),
            transport=httpx.MockTransport(handler),
        )
        assert anchor.enabled is False
        assert await anchor.fetch_latest() is None
        assert calls == []

    def test_from_settings(self):
        """Base URL and chain hash come from BeaconSettings."""
        anchor = TemporalAnchor.from_settings(
            BeaconSettings(base_url="https://relay.example/", timeout=2.0)
        )
        assert anchor.latest_url == f"https://relay.example/{DRAND_QUICKNET_CHAIN_HASH}/public/latest"
