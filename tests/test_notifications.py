import pytest

from docconnect_server.exception import NotFoundError, ValidationFailedError
from docconnect_server.messaging.offline_queue import OfflineMessageQueue
from docconnect_server.messaging.presence import ConnectionRegistry, PresenceTracker
from docconnect_server.repository.media import UserPresenceRepository


class RecordingEmitter:
    def __init__(self):
        self.to_users = []

    def emit_to_user(self, user_key, event, data):
        self.to_users.append((user_key, event, data))

    def broadcast(self, event, data):
        pass


@pytest.fixture
def wired(notification_service, db):
    presence = PresenceTracker(ConnectionRegistry(), UserPresenceRepository(db))
    queue = OfflineMessageQueue(max_per_user=10)
    emitter = RecordingEmitter()
    notification_service.attach(presence, queue, emitter)
    return notification_service, presence, queue, emitter


def test_online_recipient_gets_push_offline_recipient_gets_queue(wired):
    service, presence, queue, emitter = wired
    presence.connect('alice', 'sid-a')

    pushed = service.send_notification('alice', 'system', {'title': 'Hello', 'message': 'Welcome'})
    queued = service.send_notification('bob', 'system', {'title': 'Hello', 'message': 'Welcome'})

    assert emitter.to_users == [('alice', 'new_notification', pushed)]
    entries = queue.drain('bob')
    assert [(e['event'], e['data']) for e in entries] == [('new_notification', queued)]
    assert queue.size('alice') == 0


def test_notification_is_persisted_before_delivery(wired, db):
    service, _, _, _ = wired
    created = service.send_notification('bob', 'system', {
        'title': 'T', 'message': 'M', 'data': {'k': 1}, 'actionUrl': '/x', 'priority': 'low',
    })
    stored = db['notifications'].find_one({'recipient': 'bob'})
    assert str(stored['_id']) == created['id']
    assert stored['read'] is False
    assert created['priority'] == 'low'
    assert created['actionUrl'] == '/x'


def test_send_notification_validates(notification_service):
    with pytest.raises(ValidationFailedError):
        notification_service.send_notification('bob', 'system', {'title': 'only a title'})
    with pytest.raises(ValidationFailedError):
        notification_service.send_notification('', 'system', {'title': 'T', 'message': 'M'})


def test_new_message_notification_shape(wired):
    service, _, _, _ = wired
    payload = service.notify_new_message('bob', {'userKey': 'alice', 'firstName': 'Alice', 'lastName': 'Moreau'},
                                         'Are you free?', 'conv-1', message_id='msg-1')
    assert payload['type'] == 'new_message'
    assert payload['message'] == 'Dr. Alice Moreau: Are you free?'
    assert payload['data'] == {'senderId': 'alice', 'conversationId': 'conv-1', 'messageId': 'msg-1'}
    assert payload['priority'] == 'high'


def test_safe_variant_swallows_failures(notification_service, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError('store down')

    monkeypatch.setattr(notification_service.repo, 'create', broken)
    assert notification_service.notify_new_message_safely('bob', {'userKey': 'alice'}, 'hi', 'c1') is None


def test_producer_helpers(wired):
    service, _, _, _ = wired
    status = service.notify_application_status('bob', {'id': 'app-1'}, 'shortlisted', {'id': 'job-1', 'title': 'Locum'})
    assert status['priority'] == 'high'
    assert 'shortlisted for "Locum"' in status['message']

    unknown = service.notify_application_status('bob', {'id': 'app-1'}, 'on_hold', {'id': 'job-1'})
    assert unknown['message'] == 'Application status updated to on_hold'
    assert unknown['priority'] == 'medium'

    application = service.notify_job_application('alice', {'id': 'app-2'}, {'id': 'job-2', 'title': 'Night shift'},
                                                  {'userKey': 'bob', 'firstName': 'Bob', 'lastName': 'Okafor'})
    assert application['message'] == 'Dr. Bob Okafor applied for "Night shift"'

    view = service.notify_profile_view('alice', {'user_key': 'carol', 'first_name': 'Carol', 'last_name': 'Ito'})
    assert view['actionUrl'] == '/profile/carol'
    assert view['priority'] == 'low'

    bulk = service.send_bulk_notifications(['alice', 'bob'], 'system', {'title': 'T', 'message': 'M'})
    assert [n['recipient'] for n in bulk] == ['alice', 'bob']


def test_recipient_operations(notification_service):
    first = notification_service.send_notification('bob', 'system', {'title': 'A', 'message': 'a'})
    notification_service.send_notification('bob', 'system', {'title': 'B', 'message': 'b'})
    notification_service.send_notification('alice', 'system', {'title': 'C', 'message': 'c'})

    items, pagination = notification_service.list_notifications('bob')
    assert pagination['total'] == 2
    assert notification_service.unread_count('bob') == 2

    marked = notification_service.mark_read(first['id'], 'bob')
    assert marked['read'] is True
    assert marked['readAt'] is not None
    assert notification_service.unread_count('bob') == 1
    assert len(notification_service.list_notifications('bob', read=True)[0]) == 1

    # Another user's notification looks like a missing one
    with pytest.raises(NotFoundError):
        notification_service.mark_read(first['id'], 'alice')
    with pytest.raises(NotFoundError):
        notification_service.delete(first['id'], 'alice')

    assert notification_service.mark_all_read('bob') == 1
    assert notification_service.unread_count('bob') == 0

    notification_service.delete(first['id'], 'bob')
    assert notification_service.list_notifications('bob')[1]['total'] == 1
    with pytest.raises(NotFoundError):
        notification_service.delete(first['id'], 'bob')


def test_entry_queued_while_recipient_connects_is_pushed(wired, monkeypatch):
    service, presence, queue, emitter = wired
    drained_on_connect = []
    real_is_online = presence.is_online

    def connects_after_first_check(user_key):
        online = real_is_online(user_key)
        if not online and not presence.registry.sids_for(user_key):
            # Recipient connects and replays its queue right after this lookup
            presence.connect(user_key, 'sid-1')
            drained_on_connect.extend(queue.drain(user_key))
        return online

    monkeypatch.setattr(presence, 'is_online', connects_after_first_check)

    assert service.deliver('bob', 'message_notification', {'text': 'hi'}) is True
    assert drained_on_connect == []
    assert emitter.to_users == [('bob', 'message_notification', {'text': 'hi'})]
    assert queue.size('bob') == 0
