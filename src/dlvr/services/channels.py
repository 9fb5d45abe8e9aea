"""Channel dispatch for certified deliveries.

Every supported channel has exactly one handler; the table is checked against
DeliveryMethod when the dispatcher is built, and an unknown channel is an
error rather than a fallback to email.

Default handlers describe what the channel will do (links, flags, pending
fields such as a carrier or process server). A real transport registered for
a channel is called after the default handler and its metadata is merged over
the defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from dlvr.core.errors import DispatchError
from dlvr.core.types import DeliveryMethod

logger = logging.getLogger(__name__)

PORTAL_LINK_TTL = timedelta(days=30)
WEBHOOK_RETRIES = 3
PORTAL_AUTH_METHOD = "DLVR-ID"


@dataclass(frozen=True, slots=True)
class DispatchRequest:
    """What a channel needs to dispatch one delivery."""

    delivery_id: str
    method: DeliveryMethod
    mint_id: str
    timestamp: str
    address: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


class ChannelTransport(Protocol):
    """A real sender for one channel (SMTP relay, SMS gateway, webhook client...)."""

    async def send(self, request: DispatchRequest) -> dict[str, Any]: ...


Handler = Callable[[DispatchRequest], Awaitable[dict[str, Any]]]


class ChannelDispatcher:
    """Routes a delivery to its channel handler.

    Example:
        dispatcher = ChannelDispatcher(public_base_url="https://dlvr.example")
        dispatcher.register_transport(DeliveryMethod.EMAIL, smtp_transport)
        metadata = await dispatcher.dispatch("email", request)
    """

    def __init__(self, public_base_url: str = "https://dlvr.example") -> None:
        self._base_url = public_base_url.rstrip("/")
        self._transports: dict[DeliveryMethod, ChannelTransport] = {}
        self._handlers: dict[DeliveryMethod, Handler] = {
            DeliveryMethod.EMAIL: self._send_email,
            DeliveryMethod.SMS: self._send_sms,
            DeliveryMethod.PORTAL: self._send_portal,
            DeliveryMethod.API: self._send_api,
            DeliveryMethod.PHYSICAL: self._send_physical,
            DeliveryMethod.IN_PERSON: self._record_in_person,
            DeliveryMethod.LEGAL_SERVICE: self._initiate_legal_service,
        }
        missing = set(DeliveryMethod) - set(self._handlers)
        if missing:
            msg = f"No handler for channels: {sorted(m.value for m in missing)}"
            raise RuntimeError(msg)

    def register_transport(self, method: DeliveryMethod | str, transport: ChannelTransport) -> None:
        """Attach a real transport to a channel."""
        self._transports[DeliveryMethod.parse(method)] = transport

    async def dispatch(self, method: DeliveryMethod | str, request: DispatchRequest) -> dict[str, Any]:
        """Dispatch through the channel's handler.

        Raises:
            UnsupportedMethodError: If method is not a supported channel.
            DispatchError: If a registered transport fails.
        """
        channel = DeliveryMethod.parse(method)
        metadata = await self._handlers[channel](request)

        transport = self._transports.get(channel)
        if transport is not None:
            try:
                sent = await transport.send(request)
            except Exception as e:
                logger.exception(
                    "Transport failed for %s delivery %s",
                    channel.value,
                    request.delivery_id,
                )
                raise DispatchError(channel.value, str(e)) from e
            metadata.update(sent or {})

        logger.debug(
            "Dispatched delivery %s via %s",
            request.delivery_id,
            channel.value,
            extra={"delivery_id": request.delivery_id, "channel": channel.value},
        )
        return metadata

    def _link(self, kind: str, delivery_id: str) -> str:
        return f"{self._base_url}/{kind}/{delivery_id}"

    # -------------------------------------------------------------------------
    # Default handlers
    # -------------------------------------------------------------------------

    async def _send_email(self, request: DispatchRequest) -> dict[str, Any]:
        return {
            "channel": DeliveryMethod.EMAIL.value,
            "dispatched": True,
            "message_id": f"MSG-{request.delivery_id}",
            "to": request.address,
            "subject": f"Document Delivery: {request.mint_id}",
            "tracking_pixel": True,
            "read_receipt_requested": True,
            "links": {
                "view": self._link("view", request.delivery_id),
                "receipt": self._link("receipt", request.delivery_id),
                "decline": self._link("decline", request.delivery_id),
            },
            "timestamp": request.timestamp,
        }

    async def _send_sms(self, request: DispatchRequest) -> dict[str, Any]:
        view = self._link("view", request.delivery_id)
        return {
            "channel": DeliveryMethod.SMS.value,
            "dispatched": True,
            "message_id": f"SMS-{request.delivery_id}",
            "to": request.address,
            "body": f"You have a certified document delivery. View: {view}",
            "delivery_report": True,
            "timestamp": request.timestamp,
        }

    async def _send_portal(self, request: DispatchRequest) -> dict[str, Any]:
        expires_at = datetime.now(UTC) + PORTAL_LINK_TTL
        return {
            "channel": DeliveryMethod.PORTAL.value,
            "dispatched": True,
            "portal_url": self._link("portal/delivery", request.delivery_id),
            "requires_auth": True,
            "auth_method": PORTAL_AUTH_METHOD,
            "expires_at": expires_at.isoformat(),
            "timestamp": request.timestamp,
        }

    async def _send_api(self, request: DispatchRequest) -> dict[str, Any]:
        return {
            "channel": DeliveryMethod.API.value,
            "dispatched": True,
            "webhook_url": request.address,
            "payload": {
                "event": "delivery.created",
                "delivery_id": request.delivery_id,
                "mint_id": request.mint_id,
                "timestamp": request.timestamp,
            },
            "retries": WEBHOOK_RETRIES,
            "timestamp": request.timestamp,
        }

    async def _send_physical(self, request: DispatchRequest) -> dict[str, Any]:
        # carrier and tracking number are filled in once the item ships
        return {
            "channel": DeliveryMethod.PHYSICAL.value,
            "dispatched": True,
            "carrier": None,
            "tracking_number": None,
            "address": request.address,
            "certified": True,
            "return_receipt_requested": True,
            "timestamp": request.timestamp,
        }

    async def _record_in_person(self, request: DispatchRequest) -> dict[str, Any]:
        return {
            "channel": DeliveryMethod.IN_PERSON.value,
            "dispatched": True,
            "witness_required": True,
            "witness": None,
            "location": None,
            "geo_verified": False,
            "timestamp": request.timestamp,
        }

    async def _initiate_legal_service(self, request: DispatchRequest) -> dict[str, Any]:
        return {
            "channel": DeliveryMethod.LEGAL_SERVICE.value,
            "dispatched": True,
            "service_type": None,
            "process_server": None,
            "jurisdiction": None,
            "affidavit_required": True,
            "timestamp": request.timestamp,
        }
