"""In-process change notification hub and repository-backed live feeds."""

from inbox.infra.realtime.feed import RepositoryFeed
from inbox.infra.realtime.hub import InMemoryChangeHub

__all__ = ["InMemoryChangeHub", "RepositoryFeed"]
