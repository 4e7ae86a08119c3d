"""Observability HTTP API."""

from rabbitmq_admin.api.main import app, app_state

__all__ = ["app", "app_state"]
