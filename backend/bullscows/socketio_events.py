from flask import request
from flask_socketio import emit

from bullscows import get_coordinator, socketio
from bullscows.services.chat import ChatLog
from bullscows.services.leaderboard import LeaderboardReporter
from bullscows.services.match import (
    IdentityRegistry,
    ManualScheduler,
    MatchSettings,
    SessionCoordinator,
    SocketIOScheduler,
)


class SocketIOEmitter:
    """Outbound side of the coordinator, bound to one namespace.

    Uses ``socketio.emit`` rather than ``flask_socketio.emit`` since timer
    expiries send from background tasks with no request context.
    """

    def __init__(self, sio, namespace: str = '/'):
        self.sio = sio
        self.namespace = namespace

    def send(self, sid: str, event: str, data=None) -> None:
        if data is None:
            self.sio.emit(event, to=sid, namespace=self.namespace)
        else:
            self.sio.emit(event, data, to=sid, namespace=self.namespace)

    def broadcast(self, event: str, data=None) -> None:
        if data is None:
            self.sio.emit(event, namespace=self.namespace)
        else:
            self.sio.emit(event, data, namespace=self.namespace)


def build_coordinator(flask_app, sio) -> SessionCoordinator:
    cfg = flask_app.config
    logger = flask_app.logger
    namespace = cfg.get('SOCKETIO_NAMESPACE', '/')

    # In tests timers run on a virtual clock advanced by the test itself
    manual_timers = cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS')
    if manual_timers:
        scheduler = ManualScheduler(logger=logger)
    else:
        scheduler = SocketIOScheduler(sio, logger=logger, heartbeat_sec=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)))

    registry = IdentityRegistry(
        max_players=int(cfg.get('MAX_LOBBY', 200)),
        collision_policy=cfg.get('NAME_COLLISION_POLICY', 'suffix'),
        logger=logger,
    )
    leaderboard = LeaderboardReporter(
        cfg.get('LEADERBOARD_URL', ''),
        timeout=float(cfg.get('LEADERBOARD_TIMEOUT_SEC', 5)),
        log=logger,
    )
    return SessionCoordinator(
        SocketIOEmitter(sio, namespace),
        scheduler,
        registry=registry,
        chat=ChatLog(int(cfg.get('MAX_CHAT', 200))),
        leaderboard=leaderboard if leaderboard.enabled else None,
        settings=MatchSettings.from_config(cfg),
        spawn=None if manual_timers else sio.start_background_task,
        max_chat_message_len=int(cfg.get('MAX_CHAT_MESSAGE_LEN', 500)),
        logger=logger,
    )


def _dispatch(event: str, *args) -> None:
    get_coordinator().dispatch(event, request.sid, *args)


def handle_connect(auth=None):
    emit('updateLobby', get_coordinator().lobby_snapshot())


def handle_disconnect(reason=None):
    _dispatch('disconnect')


def handle_register_name(name=None, device_id=None):
    _dispatch('registerName', name, device_id)


def handle_challenge_player(target_name=None):
    _dispatch('challengePlayer', target_name)


def handle_accept_challenge(challenger_name=None):
    _dispatch('acceptChallenge', challenger_name)


def handle_lock_secret(secret=None):
    _dispatch('lockSecret', secret)


def handle_submit_guess(guess=None):
    _dispatch('submitGuess', guess)


def handle_chat_message(data=None, message=None):
    _dispatch('chatMessage', data, message)


def handle_request_state(*_args):
    _dispatch('requestState')


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register Socket.IO event handlers on ``namespace``.

    Re-registering (one call per app instance, e.g. in tests) replaces
    the previous binding for each event.
    """
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('registerName', handle_register_name, namespace=namespace)
    socketio.on_event('challengePlayer', handle_challenge_player, namespace=namespace)
    socketio.on_event('acceptChallenge', handle_accept_challenge, namespace=namespace)
    socketio.on_event('lockSecret', handle_lock_secret, namespace=namespace)
    socketio.on_event('submitGuess', handle_submit_guess, namespace=namespace)
    socketio.on_event('chatMessage', handle_chat_message, namespace=namespace)
    socketio.on_event('requestState', handle_request_state, namespace=namespace)
