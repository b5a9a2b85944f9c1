import pytest
from asgiref.sync import async_to_sync, sync_to_async
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.db import transaction

from core.realtime.consumers import NotificationsConsumer
from core.services import notifications
from core.services.notifications import Outbox

pytestmark = pytest.mark.django_db


def test_failing_subscriber_does_not_stop_the_others(events, django_capture_on_commit_callbacks, monkeypatch):
    failures = []
    monkeypatch.setattr(notifications.logger, 'exception', lambda msg, *args: failures.append(msg % args))

    def broken(event):
        raise RuntimeError('smtp down')

    notifications.subscribe(broken)
    try:
        with django_capture_on_commit_callbacks(execute=True):
            with transaction.atomic():
                outbox = Outbox()
                outbox.add('test_cancelled', roles=('doctor',), testRequestId=1)
                outbox.add('test_assigned', roles=('lab_technician',), testRequestId=1)
                outbox.publish_on_commit()
    finally:
        notifications.unsubscribe(broken)

    assert [e.name for e in events] == ['test_cancelled', 'test_assigned']
    assert failures == [
        'notification subscriber broken failed for test_cancelled',
        'notification subscriber broken failed for test_assigned',
    ]


def test_nothing_is_delivered_when_the_transaction_rolls_back(events, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        with pytest.raises(ValueError):
            with transaction.atomic():
                outbox = Outbox()
                outbox.add('test_assigned', roles=('lab_technician',))
                outbox.publish_on_commit()
                raise ValueError('abort')
    assert events == []


def test_publish_is_scheduled_once(django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks() as callbacks:
        outbox = Outbox()
        outbox.add('a', roles=('doctor',))
        outbox.publish_on_commit()
        outbox.publish_on_commit()
    assert len(callbacks) == 1


def test_empty_user_ids_are_dropped():
    event = Outbox().add('result_approved', user_ids=(None, 7))
    assert event.user_ids == (7,)


def test_anonymous_websocket_is_closed():
    async def run():
        communicator = WebsocketCommunicator(NotificationsConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = AnonymousUser()
        return await communicator.connect()

    assert async_to_sync(run)() == (False, 4001)


def test_websocket_receives_role_and_user_events(tech, doctor):
    async def run():
        communicator = WebsocketCommunicator(NotificationsConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = tech
        connected, _ = await communicator.connect()
        assert connected
        welcome = await communicator.receive_json_from()

        outbox = Outbox()
        outbox.add('test_assigned', roles=('lab_technician',), testRequestId=5)
        outbox.add('result_approved', user_ids=(doctor.id,), resultId=9)
        outbox.add('result_revision_needed', user_ids=(tech.id,), resultId=9)
        await sync_to_async(outbox.drain)()

        first = await communicator.receive_json_from()
        second = await communicator.receive_json_from()
        nothing_else = await communicator.receive_nothing()
        await communicator.disconnect()
        return welcome, first, second, nothing_else

    welcome, first, second, nothing_else = async_to_sync(run)()
    assert welcome == {'type': 'welcome', 'role': 'lab_technician'}
    assert first['type'] == 'test_assigned'
    assert first['data'] == {'testRequestId': 5}
    assert second['type'] == 'result_revision_needed'
    assert nothing_else is True
