from flask import Blueprint, current_app, jsonify
import time

stats = Blueprint('stats', __name__)


def _game():
    return current_app.extensions['bingo']


@stats.route('/health', methods=['GET'])
def health():
    game = _game()
    snapshot = game.stats()
    return jsonify({
        'status': 'healthy',
        'players': snapshot['totalPlayers'],
        'gameActive': snapshot['gameActive'],
        'uptime': round(time.time() - game.booted_at, 3),
    })


@stats.route('/stats', methods=['GET'])
def get_stats():
    return jsonify(_game().stats())
