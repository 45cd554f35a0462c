from datetime import datetime

import pytest
from pymongo.errors import DuplicateKeyError

from docconnect_server.exception import NotFoundError, ValidationFailedError, ForbiddenError
from docconnect_server.messaging.models import participant_key

from helpers import text


def test_participant_key_is_order_independent():
    assert participant_key('bob', 'alice') == participant_key('alice', 'bob') == 'alice|bob'


def test_find_or_create_is_idempotent_and_order_independent(service, db):
    first, created = service.find_or_create_conversation('alice', 'bob')
    second, created_again = service.find_or_create_conversation('bob', 'alice')

    assert created is True
    assert created_again is False
    assert first['_id'] == second['_id']
    assert first['participants'] == ['alice', 'bob']
    assert first['unread_count'] == {'alice': 0, 'bob': 0}
    assert db['conversations'].count_documents({}) == 1


def test_find_or_create_rejects_self_and_unknown_users(service):
    with pytest.raises(ValidationFailedError):
        service.find_or_create_conversation('alice', 'alice')
    with pytest.raises(ValidationFailedError):
        service.find_or_create_conversation('alice', None)
    with pytest.raises(NotFoundError):
        service.find_or_create_conversation('alice', 'nobody')


def test_related_to_is_validated(service):
    with pytest.raises(ValidationFailedError):
        service.find_or_create_conversation('alice', 'bob', {'type': 'invoice'})

    doc, _ = service.find_or_create_conversation('alice', 'bob', {'type': 'job', 'id': 42})
    assert doc['related_to'] == {'type': 'job', 'id': '42'}


def test_create_race_lost_on_unique_index_reuses_winner(service, monkeypatch):
    collection = service.conversations.collection
    original_update_one = collection.update_one

    def racing_update_one(filter, update, upsert=False, **kwargs):
        # Another caller inserts the same pair between our lookup and our upsert
        original_update_one(filter, update, upsert=True)
        raise DuplicateKeyError('E11000 duplicate key error')

    monkeypatch.setattr(collection, 'update_one', racing_update_one)
    doc, created = service.find_or_create_conversation('alice', 'bob')

    assert created is False
    assert doc['participant_key'] == 'alice|bob'
    assert collection.count_documents({'participant_key': 'alice|bob'}) == 1


def test_non_participant_is_forbidden(service, conversation):
    with pytest.raises(ForbiddenError):
        service.get_conversation(conversation['_id'], 'carol')
    with pytest.raises(NotFoundError):
        service.get_conversation('not-an-id', 'alice')


def test_view_is_resolved_per_participant(service, conversation):
    service.send_message(conversation['_id'], 'alice', text('hello'))
    service.toggle_mute(conversation['_id'], 'bob')

    for_bob = service.get_conversation(conversation['_id'], 'bob')
    for_alice = service.get_conversation(conversation['_id'], 'alice')

    assert for_bob['unreadCount'] == 1
    assert for_bob['isMuted'] is True
    assert for_bob['otherParticipant']['userKey'] == 'alice'
    assert for_bob['lastMessage']['content'] == 'hello'
    assert for_alice['unreadCount'] == 0
    assert for_alice['isMuted'] is False
    assert for_alice['otherParticipant']['firstName'] == 'Bob'


def test_toggle_archive_hides_conversation_from_list(service, conversation):
    items, pagination = service.list_conversations('alice')
    assert [c['id'] for c in items] == [str(conversation['_id'])]
    assert pagination['total'] == 1

    assert service.toggle_archive(conversation['_id'], 'alice') is True
    items, pagination = service.list_conversations('alice')
    assert items == []
    assert pagination['total'] == 0
    # Only the caller's view changes
    assert len(service.list_conversations('bob')[0]) == 1

    assert service.toggle_archive(conversation['_id'], 'alice') is False
    assert len(service.list_conversations('alice')[0]) == 1


def test_toggle_mute_flips(service, conversation):
    assert service.toggle_mute(conversation['_id'], 'alice') is True
    assert service.toggle_mute(conversation['_id'], 'alice') is False


def test_list_orders_by_latest_message(service, db):
    with_bob, _ = service.find_or_create_conversation('alice', 'bob')
    with_carol, _ = service.find_or_create_conversation('alice', 'carol')
    service.send_message(with_bob['_id'], 'alice', text('first'))
    service.send_message(with_carol['_id'], 'carol', text('second'))
    # Pin the activity times so ordering does not depend on clock resolution
    db['conversations'].update_one({'_id': with_bob['_id']},
                                   {'$set': {'last_message.timestamp': datetime(2024, 5, 1, 9, 0)}})
    db['conversations'].update_one({'_id': with_carol['_id']},
                                   {'$set': {'last_message.timestamp': datetime(2024, 5, 1, 10, 0)}})

    items, _ = service.list_conversations('alice')
    assert [c['id'] for c in items] == [str(with_carol['_id']), str(with_bob['_id'])]
    assert items[0]['otherParticipant']['userKey'] == 'carol'
    assert items[0]['lastMessage']['timestamp'] == '2024-05-01T10:00:00.000Z'
