"""
Topic Registry - process-wide mapping from topic name to subscribed connections.

Topics exist only while they have subscribers: created on first subscribe,
deleted when the last subscriber leaves or closes. Each connection's own
`subscribed_topics` set is updated in the same critical section, so the two
views always agree.

A single asyncio.Lock guards every mutation. Reads used for delivery take the
lock only long enough to copy the subscriber set.
"""

from __future__ import annotations

import asyncio
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable

from shared.config.logging import get_logger
from signal_relay.components.core.context import sanitize_log_data

if TYPE_CHECKING:
    from signal_relay.components.connection.connection import Connection

logger = get_logger(__name__)


class TopicRegistry:
    """
    Topic -> subscribers index with lazy creation and deletion.

    Invariants (hold whenever the lock is free):
    - every topic present has a non-empty subscriber set
    - conn in subscribers(T)  <=>  T in conn.subscribed_topics
    - a connection appears at most once per topic (set semantics)
    """

    def __init__(self) -> None:
        self._topics: dict[str, set[Connection]] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Immutable views and query methods
    # =========================================================================

    @property
    def topics(self) -> MappingProxyType[str, set["Connection"]]:
        """Topics indexed by name (immutable view)."""
        return MappingProxyType(self._topics)

    def __contains__(self, topic: str) -> bool:
        return topic in self._topics

    def __len__(self) -> int:
        return len(self._topics)

    def topic_names(self) -> list[str]:
        return list(self._topics)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    async def get_subscribers(self, topic: str) -> list["Connection"]:
        """Snapshot of the connections currently subscribed to `topic`."""
        async with self._lock:
            return list(self._topics.get(topic, ()))

    # =========================================================================
    # Mutations
    # =========================================================================

    async def subscribe(self, conn: "Connection", topics: Iterable[str]) -> list[str]:
        """
        Add `conn` to each topic, creating topics that do not exist yet.

        Returns:
            The topics the connection newly joined (already-joined ones are a
            no-op and are not returned).
        """
        joined: list[str] = []
        async with self._lock:
            if conn.is_cleaned_up:
                # Closed while this envelope was in flight; do not resurrect it.
                return joined
            for topic in topics:
                subscribers = self._topics.setdefault(topic, set())
                if conn in subscribers:
                    continue
                subscribers.add(conn)
                conn.subscribed_topics.add(topic)
                joined.append(topic)
                logger.info(
                    "Client joined topic",
                    topic=sanitize_log_data(topic),
                    subscribers=len(subscribers),
                )
        return joined

    async def unsubscribe(self, conn: "Connection", topics: Iterable[str]) -> list[str]:
        """
        Remove `conn` from each topic, deleting topics that become empty.

        Returns:
            The topics the connection actually left.
        """
        async with self._lock:
            return self._remove(conn, list(topics))

    async def remove_connection(self, conn: "Connection") -> list[str]:
        """
        Remove `conn` from every topic it belongs to and clear its own set.

        Returns:
            The topics the connection was removed from.
        """
        async with self._lock:
            left = self._remove(conn, list(conn.subscribed_topics))
            conn.subscribed_topics.clear()
        return left

    def _remove(self, conn: "Connection", topics: list[str]) -> list[str]:
        """Remove under lock. Caller must hold self._lock."""
        left: list[str] = []
        for topic in topics:
            conn.subscribed_topics.discard(topic)
            subscribers = self._topics.get(topic)
            if subscribers is None or conn not in subscribers:
                continue
            subscribers.discard(conn)
            left.append(topic)
            if not subscribers:
                del self._topics[topic]
            logger.info(
                "Client left topic",
                topic=sanitize_log_data(topic),
                remaining=len(subscribers),
            )
        return left

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, int]:
        """Registry statistics (read without the lock; values are advisory)."""
        topics = list(self._topics.values())
        return {
            "topics": len(topics),
            "subscriptions": sum(len(subscribers) for subscribers in topics),
            "largest_topic": max((len(subscribers) for subscribers in topics), default=0),
        }
