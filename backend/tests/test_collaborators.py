"""Tests for the HTTP directory, event sinks and the overdue sweep"""

import json

import httpx
import pytest

from approval_engine.domain.models import WorkflowEvent
from approval_engine.domain.enums import ApproverKind, RequestType, Priority, WorkflowEventType
from approval_engine.domain.errors import DirectoryError, EventDeliveryError, NotFoundError
from approval_engine.scheduler.overdue_scheduler import OverdueScheduler
from approval_engine.services.directory_service import HttpDirectoryService, StaticDirectory
from approval_engine.services.event_sink import WebhookEventSink, InMemoryEventSink

from .conftest import T0


def directory_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/roles/department_manager/holder":
        if request.url.params.get("department_id") == "eng":
            return httpx.Response(200, json={"id": "mgr-eng", "display_name": "Erin", "kind": "user"})
        return httpx.Response(404)
    if request.url.path == "/roles/it_manager/holder":
        return httpx.Response(200, json={"id": "it-team", "kind": "group"})
    if request.url.path == "/users/alice":
        return httpx.Response(200, json={"id": "alice", "display_name": "Alice", "department_id": "eng",
                                         "company_id": "acme"})
    if request.url.path == "/roles/ceo/holder":
        return httpx.Response(503, text="maintenance")
    return httpx.Response(404)


@pytest.fixture
def http_directory():
    service = HttpDirectoryService("http://directory.local/", transport=httpx.MockTransport(directory_handler))
    yield service
    service.close()


class TestHttpDirectoryService:
    def test_find_role_holder(self, http_directory):
        holder = http_directory.find_role_holder("department_manager", "acme", "eng")
        assert holder.approver_id == "mgr-eng"
        assert holder.role == "department_manager"

    def test_group_holder(self, http_directory):
        holder = http_directory.find_role_holder("it_manager", "acme")
        assert holder.kind == ApproverKind.GROUP

    def test_no_holder(self, http_directory):
        assert http_directory.find_role_holder("department_manager", "acme", "legal") is None

    def test_get_requester(self, http_directory):
        requester = http_directory.get_requester("alice")
        assert requester.department_id == "eng"
        assert requester.company_id == "acme"

    def test_unknown_user(self, http_directory):
        with pytest.raises(NotFoundError):
            http_directory.get_requester("ghost")

    def test_server_error(self, http_directory):
        with pytest.raises(DirectoryError) as exc:
            http_directory.find_role_holder("ceo", "acme")
        assert exc.value.http_status == 502

    def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        service = HttpDirectoryService("http://directory.local", transport=httpx.MockTransport(refuse))
        with pytest.raises(DirectoryError):
            service.get_requester("alice")


class TestStaticDirectory:
    def test_from_file(self, tmp_path):
        path = tmp_path / "directory.json"
        path.write_text(json.dumps({
            "users": [{"user_id": "alice", "display_name": "Alice", "department_id": "eng", "company_id": "acme"}],
            "role_holders": [{"role": "it_manager", "approver_id": "it-mgr", "company_id": "acme"}],
        }))
        directory = StaticDirectory.from_file(str(path))

        assert directory.get_requester("alice").department_id == "eng"
        assert directory.find_role_holder("it_manager", "acme").approver_id == "it-mgr"
        assert directory.find_role_holder("it_manager", "globex") is None


class TestWebhookEventSink:
    def event(self):
        return WorkflowEvent(instance_id="WFI-1", event=WorkflowEventType.STEP_ADVANCED, timestamp=T0,
                             step_number=2, approver_id="it-mgr")

    def test_posts_event_json(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(202)

        sink = WebhookEventSink("http://notifier.local/events", transport=httpx.MockTransport(handler))
        sink.emit(self.event())
        sink.close()

        assert received[0]["instance_id"] == "WFI-1"
        assert received[0]["event"] == "STEP_ADVANCED"
        assert received[0]["approver_id"] == "it-mgr"

    def test_http_error_raises(self):
        sink = WebhookEventSink(
            "http://notifier.local/events", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        with pytest.raises(EventDeliveryError):
            sink.emit(self.event())


class TestOverdueSweep:
    def test_reports_each_overdue_step_once(self, manager, clock, event_sink):
        instance_id = manager.create(RequestType.BUDGET_APPROVAL, "alice", {}, Priority.URGENT)
        manager.create(RequestType.BUDGET_APPROVAL, "alice", {}, Priority.LOW)
        sweeper = OverdueScheduler(manager, interval_seconds=60)

        assert sweeper.sweep(clock.advance(hours=23)) == 0
        assert sweeper.sweep(clock.advance(hours=2)) == 1
        assert sweeper.sweep(clock.advance(hours=1)) == 0

        overdue = event_sink.of_type(WorkflowEventType.STEP_OVERDUE)
        assert [(e.instance_id, e.step_number, e.approver_id) for e in overdue] == [(instance_id, 1, "fin-mgr")]

    def test_next_step_reported_after_advance(self, manager, clock, event_sink):
        instance_id = manager.create(RequestType.BUDGET_APPROVAL, "alice", {}, Priority.URGENT)
        sweeper = OverdueScheduler(manager, interval_seconds=60)
        clock.advance(hours=25)
        sweeper.sweep()

        instance, _ = manager.get(instance_id)
        manager.approve(instance_id, instance.current_step_instance().step_id, "fin-mgr")
        clock.advance(hours=24)
        assert sweeper.sweep() == 1
        assert event_sink.of_type(WorkflowEventType.STEP_OVERDUE)[-1].step_number == 2

    def test_undelivered_events_are_retried(self, manager, clock):
        class FlakySink(InMemoryEventSink):
            fail = True

            def emit(self, event):
                if self.fail and event.event == WorkflowEventType.STEP_OVERDUE:
                    raise EventDeliveryError("down")
                super().emit(event)

        sink = FlakySink()
        manager.event_sink = sink
        manager.create(RequestType.BUDGET_APPROVAL, "alice", {}, Priority.URGENT)
        sweeper = OverdueScheduler(manager, interval_seconds=60)

        assert sweeper.sweep(clock.advance(hours=25)) == 0
        sink.fail = False
        assert sweeper.sweep() == 1

    def test_decided_steps_are_forgotten(self, manager, clock):
        ids = [manager.create(RequestType.BUDGET_APPROVAL, "alice", {}, Priority.URGENT) for _ in range(3)]
        sweeper = OverdueScheduler(manager, interval_seconds=60)
        assert sweeper.sweep(clock.advance(hours=25)) == 3
        assert len(sweeper._notified) == 3

        first, _ = manager.get(ids[0])
        manager.approve(ids[0], first.current_step_instance().step_id, "fin-mgr")
        second, _ = manager.get(ids[1])
        manager.reject(ids[1], second.current_step_instance().step_id, "fin-mgr", "over budget")
        manager.cancel(ids[2], "alice")

        assert sweeper.sweep() == 0
        assert sweeper._notified == set()
