import json

import click
from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import Config

socketio = SocketIO(async_mode=None)


def _build_scheduler(flask_app):
    from quizlive.services.games import ManualScheduler, Scheduler

    if flask_app.config.get('SCHEDULER') == 'manual':
        return ManualScheduler(logger=flask_app.logger)
    return Scheduler(start_task=socketio.start_background_task, sleep=socketio.sleep, logger=flask_app.logger)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    CORS(flask_app, supports_credentials=True, origins=origins)
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from quizlive.main import main
    flask_app.register_blueprint(main)

    from quizlive.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api')

    # Register Socket.IO event handlers and wire the session registry to them
    from quizlive.socketio_events import register_socketio_handlers
    from quizlive.services.games import SessionRegistry, SessionTimings
    from quizlive.sample_quizzes import seed_sample_sessions

    gateway = register_socketio_handlers(flask_app.config.get('SOCKETIO_NAMESPACE', '/'))
    scheduler = _build_scheduler(flask_app)
    registry = SessionRegistry(
        gateway,
        scheduler,
        timings=SessionTimings.from_config(flask_app.config),
        logger=flask_app.logger,
        code_length=int(flask_app.config.get('JOIN_CODE_LENGTH', 6)),
    )
    flask_app.extensions['quizlive'] = {'registry': registry, 'scheduler': scheduler, 'gateway': gateway}

    if flask_app.config.get('SEED_SAMPLE_QUIZ'):
        for session in seed_sample_sessions(registry):
            flask_app.logger.info(f"Sample game available with PIN: {session.code}")

    @click.command('validate-quiz')
    @click.argument('path', type=click.Path(exists=True, dir_okay=False))
    def validate_quiz_command(path):
        """Checks a quiz JSON file with the rules the server applies."""
        from quizlive.errors import InvalidQuizData
        from quizlive.models import Quiz

        with open(path, encoding='utf-8') as fh:
            try:
                data = json.load(fh)
            except json.JSONDecodeError as exc:
                raise click.ClickException(f'Not valid JSON: {exc}')
        try:
            quiz = Quiz.from_dict(data)
        except InvalidQuizData as exc:
            raise click.ClickException(exc.message)
        click.echo(f'{quiz.title}: {len(quiz.questions)} questions OK')

    flask_app.cli.add_command(validate_quiz_command)

    return flask_app
