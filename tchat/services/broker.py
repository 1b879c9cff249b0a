# tchat/services/broker.py

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from tchat.models.models import EventKind

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]
Callback = Callable[[Any], None]


@dataclass(frozen=True)
class SubscriptionToken:
    """Handle returned by ``subscribe``; the only way to remove a registration."""

    id: int
    kind: EventKind


@dataclass(frozen=True)
class _Subscription:
    token: SubscriptionToken
    predicate: Predicate
    callback: Callback


# ============================================================================
# EVENT BROKER
# ============================================================================

class EventBroker:
    """
    In-process publish/subscribe hub keyed by event kind.

    Subscribers register a predicate (usually "payload.room == my room") and
    a delivery callback. Callbacks must not block: sessions enqueue into a
    bounded queue and return immediately, so a slow client never stalls the
    request handler that published.

    Guarantees:
        - publish() works on a snapshot of the registry. A subscriber added
          while a publish is running does not see that event.
        - each matching subscriber is called at most once per publish.
        - a predicate or callback that raises is logged and skipped; the
          remaining subscribers still receive the event.
        - unsubscribe() is idempotent and may race an in-flight publish.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        # kind -> {token id -> subscription}; dicts keep registration order
        self._subscriptions: Dict[EventKind, Dict[int, _Subscription]] = {
            kind: {} for kind in EventKind
        }

    def subscribe(
        self,
        kind: EventKind,
        predicate: Predicate,
        callback: Callback,
    ) -> SubscriptionToken:
        kind = EventKind(kind)
        with self._lock:
            token = SubscriptionToken(id=next(self._ids), kind=kind)
            self._subscriptions[kind][token.id] = _Subscription(token, predicate, callback)
            total = len(self._subscriptions[kind])
        logger.debug("+ subscription %s on %s (%d total)", token.id, kind.value, total)
        return token

    def unsubscribe(self, token: SubscriptionToken) -> bool:
        """Remove a registration. Returns False if it was already gone."""
        with self._lock:
            removed = self._subscriptions[token.kind].pop(token.id, None)
        if removed is not None:
            logger.debug("- subscription %s on %s", token.id, token.kind.value)
        return removed is not None

    def is_subscribed(self, token: SubscriptionToken) -> bool:
        with self._lock:
            return token.id in self._subscriptions[token.kind]

    def publish(self, kind: EventKind, payload: Any) -> int:
        """
        Deliver payload to every matching subscriber of kind.

        Returns:
            Number of subscribers the payload was handed to.
        """
        kind = EventKind(kind)
        with self._lock:
            subscribers = list(self._subscriptions[kind].values())

        if not subscribers:
            return 0

        delivered = 0
        for sub in subscribers:
            # Skip registrations removed by an earlier callback in this loop
            if not self.is_subscribed(sub.token):
                continue
            try:
                if not sub.predicate(payload):
                    continue
                sub.callback(payload)
                delivered += 1
            except Exception:
                logger.exception(
                    "Subscriber %s failed on %s - isolated", sub.token.id, kind.value
                )
        return delivered

    def subscriber_count(self, kind: Optional[EventKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._subscriptions[EventKind(kind)])
            return sum(len(subs) for subs in self._subscriptions.values())

    def clear(self) -> None:
        """Drop every registration (application shutdown)."""
        with self._lock:
            for subs in self._subscriptions.values():
                subs.clear()
