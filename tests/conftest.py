"""Shared fixtures."""

import pytest

from rabbitmq_admin.cache.registry import CacheRegistry
from rabbitmq_admin.resources.models import ResourcePage


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return CacheRegistry.from_policies(clock=clock)


def make_page(items, page=0, page_size=50, total_items=None):
    """Build a PagedResponse payload as the gateway sends it."""
    total = len(items) if total_items is None else total_items
    return {
        "items": items,
        "page": page,
        "pageSize": page_size,
        "totalItems": total,
        "totalPages": max(1, -(-total // page_size)),
        "hasNext": (page + 1) * page_size < total,
        "hasPrevious": page > 0,
    }


@pytest.fixture
def page_payload():
    return make_page


@pytest.fixture
def queue_page():
    return ResourcePage.model_validate(make_page([{"name": "orders", "vhost": "/"}]))
