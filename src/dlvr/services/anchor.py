"""Temporal anchoring against the drand randomness beacon.

A receipt anchored to beacon round N cannot have been signed before round N
was published, since the round's randomness was unpredictable until then.
Anchoring is best effort: the receipt is still issued when the beacon is
unreachable, just without an anchor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from dlvr.core.config import DRAND_DEFAULT_BASE_URL, DRAND_QUICKNET_CHAIN_HASH, BeaconSettings
from dlvr.core.errors import AnchorUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0


@dataclass(frozen=True, slots=True)
class AnchorRound:
    """A published beacon round."""

    round: int
    randomness: str
    signature: str
    chain_hash: str
    source: str = "drand"

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "chain_hash": self.chain_hash,
            "round": self.round,
            "randomness": self.randomness,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnchorRound:
        return cls(
            round=int(data["round"]),
            randomness=str(data["randomness"]),
            signature=str(data["signature"]),
            chain_hash=str(data.get("chain_hash", "")),
            source=str(data.get("source", "drand")),
        )


class TemporalAnchor:
    """Fetches the latest beacon round for receipt anchoring.

    Example:
        anchor = TemporalAnchor.from_settings(settings.beacon)
        current = await anchor.fetch_latest()
        if current is not None:
            print(current.round)
    """

    def __init__(
        self,
        base_url: str = DRAND_DEFAULT_BASE_URL,
        chain_hash: str = DRAND_QUICKNET_CHAIN_HASH,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        enabled: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the anchor.

        Args:
            base_url: drand HTTP relay base URL.
            chain_hash: Chain identifier; fixed per deployment.
            timeout: Seconds before the fetch is abandoned.
            enabled: When False no request is ever made.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._chain_hash = chain_hash
        self._timeout = timeout
        self._enabled = enabled
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: BeaconSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> TemporalAnchor:
        return cls(
            base_url=settings.base_url,
            chain_hash=settings.chain_hash,
            timeout=settings.timeout,
            enabled=settings.enabled,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def latest_url(self) -> str:
        return f"{self._base_url}/{self._chain_hash}/public/latest"

    async def fetch_latest(self) -> AnchorRound | None:
        """Fetch the latest round, or None if the beacon is disabled or unavailable.

        Never raises.
        """
        if not self._enabled:
            return None

        try:
            return await self._fetch()
        except AnchorUnavailable as e:
            logger.warning(
                "Beacon unavailable, issuing receipt without anchor: %s",
                e.message,
                extra={"beacon_url": self.latest_url},
            )
            return None

    async def _fetch(self) -> AnchorRound:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(self.latest_url)
        except httpx.TimeoutException as e:
            msg = f"request timed out after {self._timeout}s"
            raise AnchorUnavailable(msg) from e
        except httpx.HTTPError as e:
            msg = f"request failed: {e}"
            raise AnchorUnavailable(msg) from e

        if response.status_code != 200:
            msg = f"unexpected status {response.status_code}"
            raise AnchorUnavailable(msg)

        try:
            data = response.json()
        except ValueError as e:
            msg = "response is not JSON"
            raise AnchorUnavailable(msg) from e

        if not isinstance(data, dict):
            msg = "response is not a JSON object"
            raise AnchorUnavailable(msg)

        missing = [key for key in ("round", "randomness", "signature") if key not in data]
        if missing:
            msg = f"response missing fields: {', '.join(missing)}"
            raise AnchorUnavailable(msg)

        try:
            round_number = int(data["round"])
        except (TypeError, ValueError) as e:
            msg = f"invalid round number: {data['round']!r}"
            raise AnchorUnavailable(msg) from e

        logger.debug("Fetched beacon round %d", round_number)
        return AnchorRound(
            round=round_number,
            randomness=str(data["randomness"]),
            signature=str(data["signature"]),
            chain_hash=self._chain_hash,
        )
