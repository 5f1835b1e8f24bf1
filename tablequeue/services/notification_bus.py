"""
Real-time Notification Bus
Process-wide fan-out of state-change events to connected clients.

Events are invalidation signals: ``{type, data}`` where ``data`` only carries
ids and statuses. Subscribers re-fetch authoritative state; there is no replay.
"""
import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Notification event types"""
    # Order lifecycle
    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_ITEM_STATUS_UPDATED = "order_item_status_updated"
    ORDER_ITEM_CANCELLED = "order_item_cancelled"
    ORDER_READY = "order_ready"
    ORDER_CANCELLED = "order_cancelled"

    # Settlement
    PAYMENT_PROCESSED = "payment_processed"
    BILL_SHARE_UPDATED = "bill_share_updated"
    SPLIT_BILL_COMPLETED = "split_bill_completed"

    # Floor and menu
    TABLE_CREATED = "table_created"
    TABLE_UPDATED = "table_updated"
    TABLE_DELETED = "table_deleted"
    MENU_ITEM_CREATED = "menu_item_created"
    MENU_ITEM_UPDATED = "menu_item_updated"
    MENU_ITEM_DELETED = "menu_item_deleted"

    # Queue
    QUEUE_UPDATED = "queue_updated"
    TICKET_CREATED = "ticket_created"
    TICKET_CALLED = "ticket_called"
    TICKET_STATUS_UPDATED = "ticket_status_updated"

    # Tenants
    ORGANIZATION_CREATED = "organization_created"
    ORGANIZATION_UPDATED = "organization_updated"

    # Service requests
    WAITER_CALLED = "waiter_called"
    WAITER_CALL_RESOLVED = "waiter_call_resolved"

    # Bookings and feedback
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_UPDATED = "reservation_updated"
    RESERVATION_DELETED = "reservation_deleted"
    REVIEW_CREATED = "review_created"


# Types an anonymous customer socket may receive
PUBLIC_EVENT_TYPES = frozenset({
    EventType.ORDER_CREATED,
    EventType.ORDER_CONFIRMED,
    EventType.ORDER_ITEM_STATUS_UPDATED,
    EventType.ORDER_ITEM_CANCELLED,
    EventType.ORDER_READY,
    EventType.ORDER_CANCELLED,
    EventType.SPLIT_BILL_COMPLETED,
    EventType.QUEUE_UPDATED,
    EventType.TICKET_CREATED,
    EventType.TICKET_CALLED,
    EventType.TICKET_STATUS_UPDATED,
})


@dataclass
class Event:
    """One published event. ``organization_id`` is routing metadata, not payload."""
    type: EventType
    data: Dict[str, Any]
    organization_id: Optional[int] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.data}


Listener = Callable[[Event], None]


class NotificationBus:
    """
    Registry of listeners with synchronous, in-order delivery.

    ``publish`` is called by services after their commit, from whatever thread
    runs the request. Listeners must not block; a listener that raises is
    removed.
    """

    def __init__(self):
        self._listeners: Dict[int, Listener] = {}
        self._lock = threading.Lock()
        # Serializes deliveries so every listener sees the same global order
        self._publish_lock = threading.RLock()
        self._ids = itertools.count(1)
        self.stats = {
            "published": 0,
            "delivered": 0,
            "dropped_listeners": 0,
        }

    def subscribe(self, listener: Listener) -> int:
        """Register a listener and return its handle."""
        with self._lock:
            handle = next(self._ids)
            self._listeners[handle] = listener
        logger.debug(f"Bus listener {handle} subscribed")
        return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            self._listeners.pop(handle, None)
        logger.debug(f"Bus listener {handle} unsubscribed")

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(
        self,
        event_type: EventType,
        data: Dict[str, Any],
        organization_id: Optional[int] = None,
    ) -> Event:
        """Deliver an event to every current listener in registration order."""
        event = Event(type=EventType(event_type), data=data, organization_id=organization_id)
        with self._publish_lock:
            with self._lock:
                snapshot = list(self._listeners.items())
            self.stats["published"] += 1

            failed = []
            for handle, listener in snapshot:
                try:
                    listener(event)
                    self.stats["delivered"] += 1
                except Exception as e:
                    logger.warning(f"Dropping bus listener {handle} after delivery error: {e}")
                    failed.append(handle)

            if failed:
                with self._lock:
                    for handle in failed:
                        self._listeners.pop(handle, None)
                self.stats["dropped_listeners"] += len(failed)

        logger.debug(f"Published {event.type.value} to {len(snapshot)} listener(s)")
        return event


class WebSocketSubscription:
    """
    Bridges the synchronous bus to one WebSocket connection.

    Events are pushed onto an ``asyncio.Queue`` owned by the connection's event
    loop via ``call_soon_threadsafe``, so services may publish from worker
    threads. ``organization_id`` None with ``see_all`` True is a super admin;
    ``anonymous`` restricts delivery to public event types.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        organization_id: Optional[int] = None,
        see_all: bool = False,
        anonymous: bool = True,
    ):
        self.loop = loop
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self.organization_id = organization_id
        self.see_all = see_all
        self.anonymous = anonymous

    def accepts(self, event: Event) -> bool:
        if self.anonymous:
            return event.type in PUBLIC_EVENT_TYPES
        if self.see_all:
            return True
        return event.organization_id is None or event.organization_id == self.organization_id

    def __call__(self, event: Event) -> None:
        if not self.accepts(event):
            return
        self.loop.call_soon_threadsafe(self.queue.put_nowait, event.to_message())
