import pytest
from pymongo.errors import PyMongoError

from docconnect_server.exception import (
    NotFoundError, ForbiddenError, InvalidOperationError, ValidationFailedError
)

from helpers import text


def test_send_message_persists_and_updates_conversation(service, conversation):
    message, conv = service.send_message(conversation['_id'], 'alice', text('  Hi Bob  '))

    assert message['sender'] == 'alice'
    assert message['recipient'] == 'bob'
    assert message['content'] == 'Hi Bob'
    assert message['status'] == 'sent'
    assert message['seq'] == 1
    assert message['conversationId'] == str(conversation['_id'])
    assert conv['unread_count'] == {'alice': 0, 'bob': 1}
    assert conv['last_message']['content'] == 'Hi Bob'
    assert conv['last_message']['sender'] == 'alice'
    assert str(conv['last_message']['message_id']) == message['id']


def test_sequence_numbers_increase_per_conversation(service, conversation):
    seqs = [service.send_message(conversation['_id'], sender, text(f'm{i}'))[0]['seq']
            for i, sender in enumerate(['alice', 'bob', 'alice', 'alice'])]
    assert seqs == [1, 2, 3, 4]

    other, _ = service.find_or_create_conversation('alice', 'carol')
    assert service.send_message(other['_id'], 'carol', text('hello'))[0]['seq'] == 1


def test_send_rejects_bad_payloads(service, conversation):
    conv_id = conversation['_id']
    with pytest.raises(ValidationFailedError):
        service.send_message(conv_id, 'alice', text('   '))
    with pytest.raises(ValidationFailedError):
        service.send_message(conv_id, 'alice', {})
    with pytest.raises(ValidationFailedError):
        service.send_message(conv_id, 'alice', text('x' * 5001))
    with pytest.raises(InvalidOperationError):
        service.send_message(conv_id, 'alice', {'messageType': 'sticker', 'content': 'hi'})
    with pytest.raises(InvalidOperationError):
        service.send_message(conv_id, 'alice', {'messageType': 'file', 'fileName': 'scan.pdf'})
    with pytest.raises(ForbiddenError):
        service.send_message(conv_id, 'carol', text('let me in'))

    assert service.messages.collection.count_documents({}) == 0
    assert service.conversations.get(conv_id)['message_seq'] == 0


def test_file_message_uses_attachment_preview(service, conversation):
    message, conv = service.send_message(conversation['_id'], 'alice', {
        'messageType': 'file', 'fileUrl': 'https://files.example/scan.pdf',
        'fileName': 'scan.pdf', 'fileSize': 2048,
    })
    assert message['messageType'] == 'file'
    assert message['content'] is None
    assert message['fileSize'] == 2048
    assert conv['last_message']['content'] == '📎 scan.pdf'
    assert conv['last_message']['message_type'] == 'file'


def test_reply_must_belong_to_same_conversation(service, conversation):
    original, _ = service.send_message(conversation['_id'], 'alice', text('question'))
    reply, _ = service.send_message(conversation['_id'], 'bob', {'content': 'answer', 'replyTo': original['id']})
    assert reply['replyTo'] == original['id']

    other, _ = service.find_or_create_conversation('bob', 'carol')
    with pytest.raises(NotFoundError):
        service.send_message(other['_id'], 'bob', {'content': 'wrong thread', 'replyTo': original['id']})


def test_failed_insert_reverts_conversation_update(service, conversation, monkeypatch):
    first, _ = service.send_message(conversation['_id'], 'alice', text('kept'))

    def failing_insert(doc):
        raise PyMongoError('write failed')

    monkeypatch.setattr(service.messages, 'insert', failing_insert)
    with pytest.raises(PyMongoError):
        service.send_message(conversation['_id'], 'alice', text('lost'))
    monkeypatch.undo()

    conv = service.conversations.get(conversation['_id'])
    assert conv['unread_count']['bob'] == 1
    assert conv['last_message']['content'] == 'kept'
    assert str(conv['last_message']['message_id']) == first['id']

    # The burned sequence number is never reused
    after, _ = service.send_message(conversation['_id'], 'alice', text('next'))
    assert after['seq'] == 3


def test_list_messages_pages_newest_first_each_page_oldest_first(service, conversation):
    for i in range(5):
        service.send_message(conversation['_id'], 'alice', text(f'm{i}'))

    page1, pagination = service.list_messages(conversation['_id'], 'bob', page=1, limit=2)
    page2, _ = service.list_messages(conversation['_id'], 'bob', page=2, limit=2)
    page3, _ = service.list_messages(conversation['_id'], 'bob', page=3, limit=2)

    assert [m['content'] for m in page1] == ['m3', 'm4']
    assert [m['content'] for m in page2] == ['m1', 'm2']
    assert [m['content'] for m in page3] == ['m0']
    assert pagination == {'page': 1, 'limit': 2, 'total': 5, 'pages': 3}


def test_edit_message_rules(service, conversation):
    message, _ = service.send_message(conversation['_id'], 'alice', text('draft'))

    edited = service.edit_message(message['id'], 'alice', 'final')
    assert edited['content'] == 'final'
    assert edited['editedAt'] is not None

    with pytest.raises(ForbiddenError):
        service.edit_message(message['id'], 'bob', 'hijack')
    with pytest.raises(ValidationFailedError):
        service.edit_message(message['id'], 'alice', '   ')
    with pytest.raises(NotFoundError):
        service.edit_message('5f0000000000000000000000', 'alice', 'ghost')

    attachment, _ = service.send_message(conversation['_id'], 'alice', {
        'messageType': 'file', 'fileUrl': 'u', 'fileName': 'x.png', 'fileSize': 1,
    })
    with pytest.raises(InvalidOperationError):
        service.edit_message(attachment['id'], 'alice', 'caption')


def test_soft_delete_hides_only_for_the_caller(service, conversation):
    message, _ = service.send_message(conversation['_id'], 'alice', text('oops'))

    result = service.soft_delete_message(message['id'], 'alice')
    assert result['deletedForEveryone'] is False
    assert service.list_messages(conversation['_id'], 'alice')[0] == []
    assert [m['id'] for m in service.list_messages(conversation['_id'], 'bob')[0]] == [message['id']]

    # Idempotent for the same user
    assert service.soft_delete_message(message['id'], 'alice')['deletedBy'] == ['alice']

    result = service.soft_delete_message(message['id'], 'bob')
    assert result['deletedForEveryone'] is True
    assert service.list_messages(conversation['_id'], 'bob')[0] == []


def test_soft_delete_by_outsider_is_forbidden(service, conversation):
    message, _ = service.send_message(conversation['_id'], 'alice', text('private'))
    with pytest.raises(ForbiddenError):
        service.soft_delete_message(message['id'], 'carol')
