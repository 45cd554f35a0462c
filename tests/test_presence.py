import threading
import time

import pytest
from pymongo.errors import PyMongoError

from docconnect_server.exception import ValidationFailedError
from docconnect_server.messaging.presence import ConnectionRegistry, PresenceTracker
from docconnect_server.repository.media import UserPresenceRepository


class RecordingEmitter:
    def __init__(self):
        self.broadcasts = []

    def broadcast(self, event, data):
        self.broadcasts.append((event, data))


@pytest.fixture
def tracker(db):
    return PresenceTracker(ConnectionRegistry(), UserPresenceRepository(db), RecordingEmitter())


def test_registry_tracks_multiple_devices():
    registry = ConnectionRegistry()
    assert registry.register('alice', 'sid-1') is True
    assert registry.register('alice', 'sid-2') is False
    assert registry.sids_for('alice') == {'sid-1', 'sid-2'}
    assert registry.connection_count() == 2

    assert registry.unregister('sid-1') == ('alice', False)
    assert registry.is_connected('alice')
    assert registry.unregister('sid-2') == ('alice', True)
    assert not registry.is_connected('alice')
    assert registry.unregister('sid-unknown') == (None, False)
    assert registry.online_users() == []


def test_online_until_last_connection_closes(tracker, db):
    tracker.connect('alice', 'phone')
    tracker.connect('alice', 'laptop')
    assert tracker.is_online('alice')
    assert db['users'].find_one({'user_key': 'alice'})['online_status']['status'] == 'online'

    tracker.disconnect('phone')
    assert tracker.is_online('alice')
    # Only the first connect and the last disconnect are announced
    assert [d['status'] for _, d in tracker.emitter.broadcasts] == ['online']

    tracker.disconnect('laptop')
    assert not tracker.is_online('alice')
    assert [d['status'] for _, d in tracker.emitter.broadcasts] == ['online', 'offline']
    stored = db['users'].find_one({'user_key': 'alice'})['online_status']
    assert stored['status'] == 'offline'
    assert stored['last_seen'] is not None


def test_manual_status_and_presence_view(tracker):
    tracker.connect('bob', 'sid-1')
    change = tracker.set_status('bob', 'away')
    assert change['status'] == 'away'
    assert tracker.emitter.broadcasts[-1] == ('user_status_changed', change)

    presence = tracker.get_presence('bob')
    assert presence['status'] == 'away'
    assert presence['connections'] == 1
    assert presence['lastSeen'].endswith('Z')

    with pytest.raises(ValidationFailedError):
        tracker.set_status('bob', 'busy')


def test_presence_reports_offline_without_connections(tracker, db):
    db['users'].update_one({'user_key': 'carol'}, {'$set': {'online_status': {'status': 'online'}}})
    assert tracker.get_presence('carol')['status'] == 'offline'


class SlowOfflineUsers:
    """User repository whose offline writes stall long enough for a reconnect to race them."""

    def __init__(self, users):
        self._users = users
        self.offline_started = threading.Event()

    def set_status(self, user_key, status, last_seen=None):
        if status == 'offline':
            self.offline_started.set()
            time.sleep(0.2)
        return self._users.set_status(user_key, status, last_seen)

    def __getattr__(self, name):
        return getattr(self._users, name)


def test_reconnect_during_offline_write_ends_online(db):
    users = SlowOfflineUsers(UserPresenceRepository(db))
    tracker = PresenceTracker(ConnectionRegistry(), users, RecordingEmitter())
    tracker.connect('bob', 'phone')

    leaving = threading.Thread(target=tracker.disconnect, args=('phone',))
    leaving.start()
    assert users.offline_started.wait(2)
    arriving = threading.Thread(target=tracker.connect, args=('bob', 'laptop'))
    arriving.start()
    leaving.join(5)
    arriving.join(5)

    assert tracker.is_online('bob')
    assert db['users'].find_one({'user_key': 'bob'})['online_status']['status'] == 'online'
    assert [d['status'] for _, d in tracker.emitter.broadcasts] == ['online', 'offline', 'online']


def test_failed_online_write_does_not_leave_connection_registered(tracker, monkeypatch):
    def broken(*args, **kwargs):
        raise PyMongoError('store down')

    monkeypatch.setattr(tracker.users, 'set_status', broken)
    with pytest.raises(PyMongoError):
        tracker.connect('alice', 'sid-1')
    assert not tracker.is_online('alice')
    assert tracker.registry.connection_count() == 0
