from flask import Blueprint, current_app, jsonify

games = Blueprint('games', __name__)


def _registry():
    return current_app.extensions['quizlive']['registry']


@games.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'OK', 'games': len(_registry())})


@games.route('/games', methods=['GET'])
def list_games():
    """
    Lists live sessions with their progress. Read-only snapshot.
    """
    return jsonify(_registry().summaries())


@games.route('/games/<string:pin>', methods=['GET'])
def get_game(pin):
    session = _registry().find(pin)
    if session is None:
        return jsonify({'error': 'Game not found'}), 404
    payload = session.summary()
    payload['gameState'] = session.game_state()
    payload['leaderboard'] = session.leaderboard()
    return jsonify(payload)
