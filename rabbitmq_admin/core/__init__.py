"""Core runtime primitives shared by the cache and resource layers."""

from rabbitmq_admin.core.scheduling import PeriodicTask, to_seconds

__all__ = [
    "PeriodicTask",
    "to_seconds",
]
