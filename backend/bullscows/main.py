from flask import Blueprint, jsonify, request

from bullscows import get_coordinator

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Bulls & Cows Versus server!'})


@main.route('/healthz')
def healthz():
    coordinator = get_coordinator()
    with coordinator.lock:
        return jsonify({
            'status': 'ok',
            'players': len(coordinator.registry),
            'matches': len(coordinator.sessions),
        })


@main.route('/api/lobby')
def lobby():
    return jsonify(get_coordinator().lobby_snapshot())


@main.route('/api/chat')
def chat_history():
    limit = request.args.get('limit', type=int)
    coordinator = get_coordinator()
    with coordinator.lock:
        return jsonify(coordinator.chat.recent(limit))
