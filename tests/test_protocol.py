import pytest

from docconnect_server.exception import ValidationFailedError
from docconnect_server.messaging import protocol


def test_conversation_events_accept_bare_id_or_object():
    assert protocol.parse_event('join_conversation', 'c1') == protocol.JoinConversation('c1')
    assert protocol.parse_event('join_conversation', {'conversationId': 'c1'}) == protocol.JoinConversation('c1')
    assert isinstance(protocol.parse_event('typing_stop', 'c1'), protocol.TypingStop)
    with pytest.raises(ValidationFailedError):
        protocol.parse_event('leave_conversation', {})


def test_send_message_keeps_only_message_fields():
    event = protocol.parse_event('send_message', {
        'conversationId': 'c1', 'content': 'hi', 'messageType': 'text', 'sender': 'spoofed',
    })
    assert event.conversation_id == 'c1'
    assert event.message == {'content': 'hi', 'messageType': 'text'}


def test_receipt_events_require_message_ids():
    event = protocol.parse_event('mark_as_read', {'messageIds': ['m1', 'm2'], 'conversationId': 'c1'})
    assert event.message_ids == ['m1', 'm2']
    assert event.conversation_id == 'c1'
    with pytest.raises(ValidationFailedError):
        protocol.parse_event('mark_as_delivered', {'messageIds': []})
    with pytest.raises(ValidationFailedError):
        protocol.parse_event('mark_as_delivered', ['m1'])


def test_notification_query_is_bounded():
    assert protocol.parse_event('get_notifications') == protocol.GetNotifications(1, 20, None)
    assert protocol.parse_event('get_notifications', {'page': 2, 'limit': 5, 'read': False}) == \
        protocol.GetNotifications(2, 5, False)
    with pytest.raises(ValidationFailedError):
        protocol.parse_event('get_notifications', {'limit': 500})
    with pytest.raises(ValidationFailedError):
        protocol.parse_event('get_notifications', {'read': 'yes'})


def test_unknown_event_rejected():
    with pytest.raises(ValidationFailedError):
        protocol.parse_event('drop_database', {})


def test_every_event_has_a_name_and_action():
    for name, event_cls in protocol.EVENT_TYPES.items():
        assert event_cls.name == name
        assert event_cls.action
