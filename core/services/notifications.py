"""
Post-commit notification fan-out.

Services collect :class:`Event` objects in an :class:`Outbox` while their
transaction is open and call :meth:`Outbox.publish_on_commit`.  Nothing is
delivered for a transaction that rolls back.  Every subscriber runs on its
own: a failing push or email is logged and does not affect the others, nor
the already committed operation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)


@dataclass
class Event:
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    roles: Tuple[str, ...] = ()
    user_ids: Tuple[int, ...] = ()


Subscriber = Callable[[Event], None]

_subscribers: List[Subscriber] = []


def subscribe(fn: Subscriber) -> Subscriber:
    if fn not in _subscribers:
        _subscribers.append(fn)
    return fn


def unsubscribe(fn: Subscriber) -> None:
    if fn in _subscribers:
        _subscribers.remove(fn)


def subscribers() -> List[Subscriber]:
    return list(_subscribers)


class Outbox:
    def __init__(self) -> None:
        self.events: List[Event] = []
        self._scheduled = False

    def add(self, name: str, /, *, roles=(), user_ids=(), **data) -> Event:
        event = Event(name=name, data=data, roles=tuple(roles), user_ids=tuple(u for u in user_ids if u))
        self.events.append(event)
        return event

    def publish_on_commit(self) -> None:
        if self.events and not self._scheduled:
            self._scheduled = True
            transaction.on_commit(self.drain)

    def drain(self) -> None:
        events, self.events = self.events, []
        for event in events:
            for subscriber in subscribers():
                try:
                    subscriber(event)
                except Exception:
                    logger.exception('notification subscriber %s failed for %s',
                                     getattr(subscriber, '__name__', subscriber), event.name)


@subscribe
def push_event(event: Event) -> None:
    """Send the event to the websocket groups it targets."""
    if not (event.roles or event.user_ids):
        return
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    message = {
        'type': 'notify.event',
        'event': event.name,
        'data': event.data,
        'ts': timezone.now().isoformat(),
    }
    groups = [f'role.{r}' for r in event.roles] + [f'user.{u}' for u in event.user_ids]
    for group in groups:
        async_to_sync(channel_layer.group_send)(group, message)
    logger.debug('pushed %s to %s', event.name, ','.join(groups))


@subscribe
def email_event(event: Event) -> None:
    # late import: mailer pulls in models and templates
    from core.services import mailer
    handler = mailer.HANDLERS.get(event.name)
    if handler is not None:
        handler(event.data)
