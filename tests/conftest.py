"""Shared fixtures: an in-memory store, a deterministic clock and id source."""

import pytest

from handshake_core.realtime.broadcaster import Broadcaster
from handshake_core.realtime.registry import ConnectionRegistry
from handshake_core.services import wire_services
from handshake_core.store.repositories import (
    BackgroundCheckRepository,
    CalendarRepository,
    ChatRepository,
    NotificationRepository,
    OrderRepository,
    PaymentRepository,
    ProjectRepository,
    TransactionRepository,
    UserRepository,
    VerificationRepository,
)
from tests.fakes import FakeClock, FakeTransport, InMemoryStore, SequentialIds


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def make_repo(store, clock, ids):
    def factory(repository_class):
        return repository_class(store, clock=clock, id_factory=ids)

    return factory


@pytest.fixture
def users(make_repo):
    return make_repo(UserRepository)


@pytest.fixture
def orders(make_repo):
    return make_repo(OrderRepository)


@pytest.fixture
def projects(make_repo):
    return make_repo(ProjectRepository)


@pytest.fixture
def chat(make_repo):
    return make_repo(ChatRepository)


@pytest.fixture
def notifications(make_repo):
    return make_repo(NotificationRepository)


@pytest.fixture
def transactions(make_repo):
    return make_repo(TransactionRepository)


@pytest.fixture
def payments(make_repo):
    return make_repo(PaymentRepository)


@pytest.fixture
def calendar(make_repo):
    return make_repo(CalendarRepository)


@pytest.fixture
def checks(make_repo):
    return make_repo(BackgroundCheckRepository)


@pytest.fixture
def verifications(make_repo):
    return make_repo(VerificationRepository)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def registry(store, clock):
    return ConnectionRegistry(store, ttl_seconds=1800, clock=clock)


@pytest.fixture
def broadcaster(registry, transport):
    return Broadcaster(registry, transport, max_workers=4)


@pytest.fixture
def services(store, transport, clock):
    return wire_services(store, transport, ttl_seconds=1800, max_workers=4, clock=clock)
