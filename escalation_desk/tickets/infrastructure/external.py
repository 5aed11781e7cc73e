"""
Ticket External Service Integrations
=====================================

Notification boundary for ticket events:
- INotifier interface
- Webhook notifier over httpx with circuit breaker and retry
- Event bus subscriber that fires notifications without blocking the mutation

Message delivery (email/SMS/WhatsApp) happens behind the webhook.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Set

import httpx

from escalation_desk.config import settings
from escalation_desk.shared.events import EventBus, TicketCreated, TicketStatusChanged
from escalation_desk.shared.infrastructure.logging import get_logger
from escalation_desk.tickets.domain import status_label

logger = get_logger(__name__)


@dataclass
class TicketNotification:
    """Payload sent to the notification relay."""
    kind: str  # created or status_changed
    ticket_id: str
    ticket_number: str
    category: str
    description: str
    tracking_link: str
    status: str
    old_status: Optional[str] = None
    status_label: Optional[str] = None


class INotifier(ABC):
    """Interface for the message-sending boundary."""

    @abstractmethod
    async def send(self, notification: TicketNotification) -> bool:
        """Deliver a notification; returns False when it was not delivered."""

    async def close(self) -> None:
        """Release any held resources."""


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for the notification relay.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED
        self._opened_at = None

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotifier(INotifier):
    """
    Webhook client with circuit breaker and retry logic.

    Posts JSON notifications to the relay with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._url = webhook_url
        self._timeout = timeout_seconds or settings.notification_timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._http_client = client
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def send(self, notification: TicketNotification) -> bool:
        """
        Post a notification to the webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"ticket_number": notification.ticket_number}
            )
            return False

        payload: Dict[str, Any] = asdict(notification)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=payload)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification sent",
                        extra={"ticket_number": notification.ticket_number, "kind": notification.kind}
                    )
                    return True

                logger.warning(
                    "Notification webhook returned an error status",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "ticket_number": notification.ticket_number
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def tracking_link(ticket_number: str, base_url: Optional[str] = None) -> str:
    base = (base_url or settings.tracking_base_url).rstrip("/")
    return f"{base}/track/{ticket_number}"


class NotificationSubscriber:
    """
    Bridges the event bus to an INotifier.

    Delivery runs in a background task so a slow or failing relay never
    holds up or rolls back the ticket mutation.
    """

    def __init__(self, notifier: INotifier, tracking_base_url: Optional[str] = None):
        self._notifier = notifier
        self._tracking_base_url = tracking_base_url
        self._pending: Set[asyncio.Task] = set()

    def register(self, bus: EventBus) -> None:
        bus.subscribe(TicketCreated, self.on_created)
        bus.subscribe(TicketStatusChanged, self.on_status_changed)

    def _dispatch(self, notification: TicketNotification) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, notification: TicketNotification) -> None:
        try:
            await self._notifier.send(notification)
        except Exception as e:
            logger.error(
                "Notification delivery raised",
                extra={"ticket_number": notification.ticket_number, "error": str(e)}
            )

    # handlers return None so the bus does not wait for delivery
    def on_created(self, event: TicketCreated) -> None:
        self._dispatch(TicketNotification(
            kind="created",
            ticket_id=event.ticket_id,
            ticket_number=event.ticket_number,
            category=event.category,
            description=event.description,
            tracking_link=tracking_link(event.ticket_number, self._tracking_base_url),
            status="open",
            status_label=status_label("open"),
        ))

    def on_status_changed(self, event: TicketStatusChanged) -> None:
        self._dispatch(TicketNotification(
            kind="status_changed",
            ticket_id=event.ticket_id,
            ticket_number=event.ticket_number,
            category=event.category,
            description=event.description,
            tracking_link=tracking_link(event.ticket_number, self._tracking_base_url),
            status=event.new_status,
            old_status=event.old_status,
            status_label=status_label(event.new_status),
        ))

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
