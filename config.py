import os


def _flag(name, default):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000'
        ).split(',') if o.strip()
    ]
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    # Phase timers (seconds)
    QUESTION_START_DELAY_SEC = int(os.environ.get('QUESTION_START_DELAY_SEC', '3'))
    RESULTS_DURATION_SEC = int(os.environ.get('RESULTS_DURATION_SEC', '5'))
    # Ended sessions stay readable this long before eviction
    EVICTION_GRACE_SEC = int(os.environ.get('EVICTION_GRACE_SEC', '30'))
    JOIN_CODE_LENGTH = int(os.environ.get('JOIN_CODE_LENGTH', '6'))
    # Preload the demo quiz under code DEMO01
    SEED_SAMPLE_QUIZ = _flag('SEED_SAMPLE_QUIZ', '1')
    # Send the correct option index along with question-started
    REVEAL_ANSWER_IN_QUESTION = _flag('REVEAL_ANSWER_IN_QUESTION', '0')
    # 'background' runs timers as Socket.IO background tasks; 'manual' waits for advance()
    SCHEDULER = os.environ.get('SCHEDULER', 'background')
