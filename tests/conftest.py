import os

# Select config.test.yaml before anything imports the config singleton.
os.environ['APP_ENV'] = 'test'

import mongomock
import pytest

from config import Config

Config.reload()

from docconnect_server.messaging.service import MessagingService
from docconnect_server.messaging.notifications import NotificationService
from docconnect_server.repository.mongo_helper import MongoRepositorySingleton, ensure_indexes
from docconnect_server.security.authentication import AuthSecurity
from server import create_app

from helpers import USERS


@pytest.fixture
def db():
    database = mongomock.MongoClient()['docconnect_test']
    database['users'].insert_many([dict(u) for u in USERS])
    yield database
    MongoRepositorySingleton.reset()


@pytest.fixture
def service(db):
    ensure_indexes(db)
    return MessagingService(db)


@pytest.fixture
def notification_service(db):
    return NotificationService(db)


@pytest.fixture
def conversation(service):
    doc, _ = service.find_or_create_conversation('alice', 'bob')
    return doc


@pytest.fixture
def app(db):
    application = create_app(db=db)
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def socketio(app):
    return app.extensions['socketio']


@pytest.fixture
def make_token(app):
    def _make(user_key, **claims):
        return AuthSecurity.encode_token({'user_key': user_key, **claims})
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_key):
        return {'Authorization': f'Bearer {make_token(user_key)}'}
    return _headers


@pytest.fixture
def connect(app, socketio, make_token):
    """Open a Socket.IO test connection for a user; all are closed at teardown."""
    clients = []

    def _connect(user_key=None, token=None):
        if token is None and user_key is not None:
            token = make_token(user_key)
        auth = {'token': token} if token is not None else None
        sio_client = socketio.test_client(app, auth=auth)
        clients.append(sio_client)
        return sio_client

    yield _connect
    for sio_client in clients:
        if sio_client.is_connected():
            sio_client.disconnect()
