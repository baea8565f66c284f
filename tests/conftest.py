import copy
import logging
import os
import sys
import pytest

# Ensure the project root (containing the `quizlive` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from quizlive import create_app, socketio
from quizlive.gateway import BroadcastGateway
from quizlive.models import Quiz
from quizlive.services.games import ManualScheduler, SessionRegistry, SessionTimings


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = ['http://localhost:3000']
    SOCKETIO_NAMESPACE = '/'
    QUESTION_START_DELAY_SEC = 3
    RESULTS_DURATION_SEC = 5
    EVICTION_GRACE_SEC = 30
    JOIN_CODE_LENGTH = 6
    SEED_SAMPLE_QUIZ = True
    REVEAL_ANSWER_IN_QUESTION = False
    SCHEDULER = 'manual'


QUIZ_DATA = {
    'id': 'gk',
    'title': 'General Knowledge',
    'questions': [
        {'id': 'q1', 'text': 'Capital of France?', 'options': ['London', 'Berlin', 'Paris', 'Madrid'],
         'correctAnswer': 2, 'timeLimit': 20},
        {'id': 'q2', 'text': 'The Red Planet?', 'options': ['Venus', 'Mars', 'Jupiter', 'Saturn'],
         'correctAnswer': 1, 'timeLimit': 15},
        {'id': 'q3', 'text': '7 x 8?', 'options': ['54', '56', '58', '52'],
         'correctAnswer': 1, 'timeLimit': 10},
    ],
}


class RecordingGateway(BroadcastGateway):
    """In-memory gateway that keeps every send for assertions."""

    def __init__(self, conn_id='host'):
        self.current_conn = conn_id
        self.rooms = {}
        self.sent = []

    def identify(self):
        return self.current_conn

    def join_room(self, conn_id, room):
        self.rooms.setdefault(room, set()).add(conn_id)

    def leave_room(self, conn_id, room):
        self.rooms.get(room, set()).discard(conn_id)

    def send_to_room(self, room, event, payload):
        self.sent.append((room, event, payload))

    def send_to_connection(self, conn_id, event, payload):
        self.sent.append((conn_id, event, payload))

    def events(self, name):
        return [payload for _, event, payload in self.sent if event == name]

    def sent_to(self, target, name):
        return [payload for to, event, payload in self.sent if to == target and event == name]


@pytest.fixture()
def quiz_data():
    return copy.deepcopy(QUIZ_DATA)


@pytest.fixture()
def quiz(quiz_data):
    return Quiz.from_dict(quiz_data)


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def gateway_factory():
    return RecordingGateway


@pytest.fixture()
def scheduler():
    return ManualScheduler(logger=logging.getLogger('tests.scheduler'))


@pytest.fixture()
def registry(gateway, scheduler):
    return SessionRegistry(gateway, scheduler, timings=SessionTimings(), logger=logging.getLogger('tests.registry'))


@pytest.fixture()
def session(registry, quiz):
    created, _, _ = registry.create_or_attach('host', quiz=quiz)
    return created


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def app_scheduler(flask_app):
    return flask_app.extensions['quizlive']['scheduler']


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _connect():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass
