"""Event Sink - Delivery of workflow events to an external notifier

Events are emitted only after a transition has been committed. A failed
delivery raises EventDeliveryError; the workflow manager logs it and the
committed transition stands.
"""
import threading
from typing import List, Optional, Protocol

import httpx

from ..domain.models import WorkflowEvent
from ..domain.enums import WorkflowEventType
from ..domain.errors import EventDeliveryError
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


class EventSink(Protocol):
    """Receives workflow events"""

    def emit(self, event: WorkflowEvent) -> None:
        ...


class LoggingEventSink:
    """Writes events to the application log (default when no webhook is configured)"""

    def emit(self, event: WorkflowEvent) -> None:
        logger.info(
            f"Workflow event {event.event.value} for {event.instance_id}",
            extra={
                "instance_id": event.instance_id,
                "event": event.event.value,
                "step_number": event.step_number,
                "actor_id": event.approver_id,
            }
        )


class InMemoryEventSink:
    """Collects events in a list"""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: WorkflowEventType) -> List[WorkflowEvent]:
        with self._lock:
            return [e for e in self.events if e.event == event_type]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


class WebhookEventSink:
    """POSTs each event as JSON to a webhook URL"""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.url = url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def emit(self, event: WorkflowEvent) -> None:
        headers = {}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-Id"] = correlation_id

        try:
            response = self._client.post(self.url, json=event.model_dump(mode="json"), headers=headers)
        except httpx.HTTPError as e:
            raise EventDeliveryError(
                f"Event delivery failed: {e}",
                details={"instance_id": event.instance_id, "event": event.event.value}
            ) from e

        if response.status_code >= 300:
            raise EventDeliveryError(
                f"Webhook returned HTTP {response.status_code}",
                details={
                    "instance_id": event.instance_id,
                    "event": event.event.value,
                    "status_code": response.status_code,
                    "response": response.text[:200]
                }
            )
