"""Shared test data and small assertions helpers."""

USERS = [
    {'user_key': 'alice', 'first_name': 'Alice', 'last_name': 'Moreau', 'role': 'senior',
     'primary_specialty': 'Cardiology', 'account_status': 'active'},
    {'user_key': 'bob', 'first_name': 'Bob', 'last_name': 'Okafor', 'role': 'junior',
     'primary_specialty': 'Radiology', 'account_status': 'active'},
    {'user_key': 'carol', 'first_name': 'Carol', 'last_name': 'Ito', 'role': 'junior'},
    {'user_key': 'dave', 'first_name': 'Dave', 'last_name': 'Singh', 'account_status': 'suspended'},
]


def received(sio_client, name):
    """Payloads of every event called ``name`` received since the last call (drains the client)."""
    return [event['args'][0] if event['args'] else None
            for event in sio_client.get_received() if event['name'] == name]


def events_by_name(sio_client):
    """Drain the client and group payloads by event name."""
    grouped = {}
    for event in sio_client.get_received():
        grouped.setdefault(event['name'], []).append(event['args'][0] if event['args'] else None)
    return grouped


def text(content):
    return {'content': content}
