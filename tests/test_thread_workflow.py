import threading

import pytest

from src.modules.applicant_registry import ApplicantRegistry, RegistryConflictError, RegistryEntry
from src.modules.thread_workflow import OpenThreadOutcome, ThreadOpenCoordinator


class FakeThread:
    def __init__(self, thread_id, archived=False):
        self.id = thread_id
        self.locked = False
        self.archived = archived
        self.messages = []

    def send(self, content):
        self.messages.append(content)

    def set_locked(self, locked, reason):
        self.locked = locked

    def set_archived(self, archived, reason):
        self.archived = archived


class FakeClient:
    def __init__(self):
        self.threads = {}

    def fetch_thread(self, thread_id):
        return self.threads.get(thread_id)


@pytest.fixture
def registry(tmp_path, clock):
    reg = ApplicantRegistry(tmp_path / "registry.json", clock=clock)
    reg.open()
    yield reg
    reg.close()


@pytest.fixture
def client():
    return FakeClient()


def creator(client, owner="user-1", thread="thread-1", calls=None):
    def create():
        if calls is not None:
            calls.append(thread)
        client.threads[thread] = FakeThread(thread)
        return RegistryEntry(
            owner_key=owner,
            resource_tag=f"{owner}#0001",
            resource_id=thread,
            external_url=f"https://chat.example/{thread}",
            correlation_key="#2PP",
        )
    return create


def test_creates_and_registers(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    result = workflow.open_thread("msg-1", creator(client))

    assert result.outcome is OpenThreadOutcome.CREATED
    assert result.entry.trigger_key == "msg-1"
    assert registry.lookup_by_trigger("msg-1") == result.entry
    assert registry.claims.pending_count == 0


def test_second_trigger_sees_open_thread(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    calls = []
    workflow.open_thread("msg-1", creator(client, calls=calls))
    result = workflow.open_thread("msg-1", creator(client, calls=calls))

    assert result.outcome is OpenThreadOutcome.ALREADY_OPEN
    assert calls == ["thread-1"]


def test_archived_thread_is_cleared_and_recreated(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    workflow.open_thread("msg-1", creator(client))
    client.threads["thread-1"].archived = True

    result = workflow.open_thread("msg-1", creator(client, thread="thread-2"))

    assert result.outcome is OpenThreadOutcome.CREATED
    assert registry.lookup_by_resource("thread-1") is None
    assert registry.lookup("user-1").resource_id == "thread-2"


def test_create_returning_none_releases_claim(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    result = workflow.open_thread("msg-1", lambda: None)

    assert result.outcome is OpenThreadOutcome.NOT_CREATED
    assert registry.try_claim("msg-1") is True


def test_create_failure_releases_claim(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)

    def boom():
        raise RuntimeError("missing permissions")

    with pytest.raises(RuntimeError):
        workflow.open_thread("msg-1", boom)
    assert registry.claims.pending_count == 0


def test_concurrent_trigger_is_in_progress(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    entered = threading.Event()
    proceed = threading.Event()
    inner = creator(client)

    def slow_create():
        entered.set()
        proceed.wait(5)
        return inner()

    results = []
    worker = threading.Thread(target=lambda: results.append(workflow.open_thread("msg-1", slow_create)))
    worker.start()
    assert entered.wait(5)

    second = workflow.open_thread("msg-1", creator(client, thread="thread-x"))
    assert second.outcome is OpenThreadOutcome.IN_PROGRESS

    proceed.set()
    worker.join(5)
    assert results[0].outcome is OpenThreadOutcome.CREATED
    assert registry.lookup_by_resource("thread-x") is None


def test_second_trigger_for_same_applicant_closes_new_thread(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    first = workflow.open_thread("msg-1", creator(client, thread="thread-1"))

    result = workflow.open_thread("msg-2", creator(client, thread="thread-2"))

    assert result.outcome is OpenThreadOutcome.ALREADY_OPEN
    assert result.entry == first.entry
    assert registry.lookup_by_resource("thread-2") is None
    duplicate = client.threads["thread-2"]
    assert duplicate.locked and duplicate.archived
    assert not client.threads["thread-1"].archived
    assert registry.claims.pending_count == 0


def test_duplicate_thread_goes_to_injected_discard(registry, client):
    discarded = []
    workflow = ThreadOpenCoordinator(registry, client, discard=discarded.append)
    workflow.open_thread("msg-1", creator(client, thread="thread-1"))
    workflow.open_thread("msg-2", creator(client, thread="thread-2"))

    assert [e.resource_id for e in discarded] == ["thread-2"]
    assert discarded[0].trigger_key == "msg-2"


def test_discard_failure_still_reports_open_thread(registry, client):
    def broken_discard(entry):
        raise RuntimeError("missing permissions")

    workflow = ThreadOpenCoordinator(registry, client, discard=broken_discard)
    workflow.open_thread("msg-1", creator(client, thread="thread-1"))
    result = workflow.open_thread("msg-2", creator(client, thread="thread-2"))

    assert result.outcome is OpenThreadOutcome.ALREADY_OPEN
    assert registry.claims.pending_count == 0


def test_applicant_with_closed_thread_gets_new_one(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    workflow.open_thread("msg-1", creator(client, thread="thread-1"))
    client.threads["thread-1"].archived = True

    result = workflow.open_thread("msg-2", creator(client, thread="thread-2"))

    assert result.outcome is OpenThreadOutcome.CREATED
    assert registry.lookup("user-1").resource_id == "thread-2"
    assert registry.lookup_by_trigger("msg-1") is None
    assert registry.lookup_by_trigger("msg-2") == result.entry


def test_thread_registered_to_another_applicant_raises(registry, client):
    workflow = ThreadOpenCoordinator(registry, client)
    workflow.open_thread("msg-1", creator(client, owner="user-9", thread="thread-1"))

    with pytest.raises(RegistryConflictError):
        workflow.open_thread("msg-2", creator(client, owner="user-1", thread="thread-1"))
    assert registry.lookup("user-1") is None
    assert registry.claims.pending_count == 0
