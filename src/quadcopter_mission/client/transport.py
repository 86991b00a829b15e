"""
Transport Seam

The client never talks to a socket directly. A Transport opens the channel,
registers topic subscriptions, sends service calls, and hands every inbound
rosbridge message to the handler registered at connect time:

    {"op": "publish", "topic": str, "msg": dict}
    {"op": "service_response", "id": str, "service": str,
     "values": dict, "result": bool}

Reconnection, serialization and timeouts belong to the transport.
"""

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict], None]


@runtime_checkable
class Transport(Protocol):
    """Bidirectional message channel to one vehicle."""

    @property
    def is_connected(self) -> bool: ...

    def connect(self, endpoint: str, on_message: MessageHandler) -> None: ...

    def disconnect(self) -> None: ...

    def subscribe(self, topic: str, message_type: str) -> None: ...

    def call_service(self, service: str, call_id: str, args: list | None = None) -> None: ...


class LoopbackTransport:
    """
    In-memory transport for tests and offline use.

    Outbound subscriptions and calls are recorded; publish() and respond()
    inject inbound messages into the connected client synchronously.

    Attributes:
        endpoint: Endpoint passed to the last connect().
        subscriptions: (topic, message_type) pairs in registration order.
        calls: Outbound service calls as dicts with "service", "id", "args".
    """

    def __init__(self):
        self.endpoint: str | None = None
        self.subscriptions: list[tuple[str, str]] = []
        self.calls: list[dict] = []
        self._on_message: MessageHandler | None = None

    @property
    def is_connected(self) -> bool:
        return self._on_message is not None

    def connect(self, endpoint: str, on_message: MessageHandler) -> None:
        self.endpoint = endpoint
        self._on_message = on_message
        logger.debug("Loopback connected to %s", endpoint)

    def disconnect(self) -> None:
        self._on_message = None
        logger.debug("Loopback disconnected from %s", self.endpoint)

    def subscribe(self, topic: str, message_type: str) -> None:
        self.subscriptions.append((topic, message_type))

    def call_service(self, service: str, call_id: str, args: list | None = None) -> None:
        if not self.is_connected:
            raise ConnectionError("Loopback transport is not connected")
        self.calls.append({"service": service, "id": call_id, "args": args})

    def last_call(self, service: str | None = None) -> dict:
        """Most recent outbound call, optionally for one service."""
        for call in reversed(self.calls):
            if service is None or call["service"] == service:
                return call
        raise LookupError(f"No call recorded for {service or 'any service'}")

    def publish(self, topic: str, msg: dict) -> bool:
        """Deliver a telemetry message. Returns False if nobody is connected."""
        return self._deliver({"op": "publish", "topic": topic, "msg": msg})

    def respond(self, call_id: str, values: dict | None = None, result: bool = True) -> bool:
        """Deliver a service response for call_id. Returns False if disconnected."""
        service = next(
            (call["service"] for call in reversed(self.calls) if call["id"] == call_id),
            None,
        )
        return self._deliver({
            "op": "service_response",
            "id": call_id,
            "service": service,
            "values": values or {},
            "result": result,
        })

    def _deliver(self, message: dict) -> bool:
        if self._on_message is None:
            logger.debug("Loopback dropped %s while disconnected", message.get("op"))
            return False
        self._on_message(message)
        return True
