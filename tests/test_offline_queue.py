import threading

import pytest

from docconnect_server.messaging.offline_queue import OfflineMessageQueue


def test_drain_returns_fifo_and_empties():
    queue = OfflineMessageQueue(max_per_user=10)
    queue.enqueue('bob', 'new_notification', {'n': 1})
    queue.enqueue('bob', 'message_notification', {'n': 2})
    queue.enqueue('alice', 'new_notification', {'n': 3})

    entries = queue.drain('bob')
    assert [(e['event'], e['data']['n']) for e in entries] == [('new_notification', 1), ('message_notification', 2)]
    assert all(e['queued_at'].endswith('Z') for e in entries)
    assert queue.drain('bob') == []
    assert queue.size('alice') == 1


def test_overflow_drops_oldest_and_counts():
    queue = OfflineMessageQueue(max_per_user=3)
    for n in range(5):
        queue.enqueue('bob', 'new_notification', n)

    assert [e['data'] for e in queue.drain('bob')] == [2, 3, 4]
    stats = queue.stats()
    assert stats['dropped'] == 2
    assert stats['enqueued'] == 5
    assert stats['delivered'] == 3
    assert stats['queued'] == 0
    assert stats['maxPerUser'] == 3


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        OfflineMessageQueue(max_per_user=0)


def test_concurrent_enqueue_and_drain_lose_nothing_within_capacity():
    queue = OfflineMessageQueue(max_per_user=1000)
    drained = []

    def producer(offset):
        for n in range(100):
            queue.enqueue('bob', 'new_notification', offset + n)

    def consumer():
        for _ in range(50):
            drained.extend(e['data'] for e in queue.drain('bob'))

    threads = [threading.Thread(target=producer, args=(i * 100,)) for i in range(4)]
    threads.append(threading.Thread(target=consumer))
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    drained.extend(e['data'] for e in queue.drain('bob'))

    assert sorted(drained) == list(range(400))


def test_requeue_restores_undelivered_entries_ahead_of_newer_ones():
    queue = OfflineMessageQueue(max_per_user=3)
    queue.enqueue('bob', 'new_notification', 1)
    queue.enqueue('bob', 'new_notification', 2)
    drained = queue.drain('bob')
    queue.enqueue('bob', 'new_notification', 3)
    queue.enqueue('bob', 'new_notification', 4)

    queue.requeue('bob', drained)

    # Capacity still applies, oldest first out
    assert [e['data'] for e in queue.drain('bob')] == [2, 3, 4]
    stats = queue.stats()
    assert stats['dropped'] == 1
    assert stats['delivered'] == 3

    queue.requeue('bob', [])
    assert queue.size('bob') == 0
