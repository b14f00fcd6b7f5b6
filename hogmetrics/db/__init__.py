"""Warehouse client abstraction layer."""

from hogmetrics.db.base import BaseWarehouseClient, QueryResult
from hogmetrics.db.cache import ClientCache
from hogmetrics.db.posthog import PostHogClient

__all__ = ["BaseWarehouseClient", "ClientCache", "PostHogClient", "QueryResult"]
