import logging
import random
from typing import Callable, Dict, Optional

from ..chat import SYSTEM, ChatLog
from .errors import (
    InvalidChallenge,
    LobbyFull,
    MalformedPayload,
    MatchError,
    NameCollision,
    NotPaired,
)
from .registry import IdentityRegistry, Player
from .session import DECIDED_REASONS, FORFEIT_WIN, MatchSession, MatchSettings
from .timers import Scheduler

_log = logging.getLogger(__name__)


class SessionCoordinator:
    """Routes inbound events to the registry and to match sessions.

    Every public entry point and every timer expiry runs under
    ``self.lock`` (shared with the scheduler), so state mutations never
    interleave. ``dispatch`` is the transport-facing entry: it maps event
    names to handlers and turns ``MatchError`` into the reply (or the
    silent drop) the protocol calls for.
    """

    def __init__(
        self,
        emitter,
        scheduler: Scheduler,
        *,
        registry: Optional[IdentityRegistry] = None,
        chat: Optional[ChatLog] = None,
        leaderboard=None,
        settings: Optional[MatchSettings] = None,
        rng: Optional[random.Random] = None,
        spawn: Optional[Callable] = None,
        max_chat_message_len: int = 500,
        logger=None,
    ):
        self.emitter = emitter
        self.scheduler = scheduler
        self.lock = scheduler.lock
        self.logger = logger or _log
        self.registry = registry if registry is not None else IdentityRegistry(logger=self.logger)
        self.chat = chat if chat is not None else ChatLog()
        self.leaderboard = leaderboard
        self.settings = settings or MatchSettings()
        self.rng = rng or random.Random()
        self.spawn = spawn or (lambda fn, *args: fn(*args))
        self.max_chat_message_len = max_chat_message_len
        self.sessions: Dict[int, MatchSession] = {}
        self._handlers = {
            'registerName': self.register_name,
            'challengePlayer': self.challenge_player,
            'acceptChallenge': self.accept_challenge,
            'lockSecret': self.lock_secret,
            'submitGuess': self.submit_guess,
            'chatMessage': self.chat_message,
            'requestState': self.request_state,
            'disconnect': self.disconnect,
        }

    def dispatch(self, event: str, sid: str, *args) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            self.logger.debug(f"[drop] event={event} sid={sid} reason=unknown event")
            return
        with self.lock:
            try:
                handler(sid, *args)
            except NameCollision as exc:
                self.emitter.send(sid, 'nameTaken', {'name': exc.name})
            except LobbyFull as exc:
                self.emitter.send(sid, 'lobbyFull', {'max': exc.limit})
            except MatchError as exc:
                self.logger.debug(f"[drop] event={event} sid={sid} reason={type(exc).__name__}: {exc}")

    # ---- identity ----

    def register_name(self, sid, name=None, device_id=None) -> Player:
        if isinstance(name, dict):
            name, device_id = name.get('name'), name.get('deviceId', device_id)
        if device_id is not None and not isinstance(device_id, str):
            raise MalformedPayload('deviceId must be a string')

        reg = self.registry.register(name, device_id, sid)
        player = reg.player
        if reg.replaced_sid:
            self.logger.info(f"[reclaim] player={player.name} old_sid={reg.replaced_sid} new_sid={sid}")
            self.emitter.send(reg.replaced_sid, 'forceDisconnect')

        self.emitter.send(sid, 'nameRegistered', {'assignedName': player.name})
        if reg.renamed:
            self.emitter.send(sid, 'chatMessage', {
                'name': SYSTEM,
                'message': f"Your name is now “{player.name}” (duplicate avoided).",
            })
        if reg.created:
            self.logger.info(f"[register] player={player.name} sid={sid}")
            self._system_chat(f"{player.name} connected")

        self.emitter.send(sid, 'chatHistory', self.chat.recent())
        self.broadcast_lobby()
        if player.match is not None:
            player.match.participant_reconnected(player)
        return player

    def disconnect(self, sid, *_reason) -> None:
        player = self.registry.by_sid(sid)
        if player is None:
            return
        if player.match is None:
            self.logger.info(f"[leave] player={player.name}")
            self.registry.unbind(player.name, graceful=True)
        else:
            self.logger.info(f"[grace] player={player.name} match={player.match.id}")
            self.registry.unbind(player.name, graceful=False)
            player.match.participant_disconnected(player)
        self.broadcast_lobby()

    # ---- handshake ----

    def challenge_player(self, sid, target_name=None) -> None:
        me = self.registry.require(sid)
        target = self._pairable_opponent(me, target_name)
        self.logger.info(f"[challenge] from={me.name} to={target.name}")
        self.emitter.send(target.sid, 'challengeReceived', {'from': me.name})

    def accept_challenge(self, sid, challenger_name=None) -> MatchSession:
        me = self.registry.require(sid)
        challenger = self._pairable_opponent(me, challenger_name)
        session = MatchSession(
            challenger,
            me,
            emitter=self.emitter,
            scheduler=self.scheduler,
            settings=self.settings,
            on_terminated=self._on_session_terminated,
            rng=self.rng,
            logger=self.logger,
        )
        self.sessions[session.id] = session
        self.emitter.send(challenger.sid, 'redirectToMatch', {'opponent': me.name})
        self.emitter.send(me.sid, 'redirectToMatch', {'opponent': challenger.name})
        self.broadcast_lobby()
        return session

    def _pairable_opponent(self, me: Player, other_name) -> Player:
        if isinstance(other_name, dict):
            other_name = other_name.get('name')
        if not isinstance(other_name, str) or not other_name:
            raise MalformedPayload('player name is required')
        other = self.registry.get(other_name)
        if other is None or other is me:
            raise InvalidChallenge(f"no such opponent {other_name!r}")
        if me.in_game or other.in_game:
            raise InvalidChallenge(f"{me.name} or {other.name} is already paired")
        if not other.connected:
            raise InvalidChallenge(f"{other.name} is offline")
        return other

    # ---- match actions ----

    def lock_secret(self, sid, secret=None) -> None:
        me = self.registry.require(sid)
        self._session_of(me).lock_secret(me, secret)

    def submit_guess(self, sid, guess=None) -> None:
        me = self.registry.require(sid)
        self._session_of(me).submit_guess(me, guess)

    def request_state(self, sid, *_args) -> None:
        me = self.registry.require(sid)
        self.emitter.send(sid, 'syncState', self.state_for(me))

    def state_for(self, player: Player) -> dict:
        if player.match is not None:
            return player.match.state_for(player)
        return {
            'inGame': False,
            'state': None,
            'you': player.name,
            'opponent': None,
            'yourTurn': False,
            'youLocked': False,
            'opponentLocked': False,
        }

    def _session_of(self, player: Player) -> MatchSession:
        session = player.match
        if session is None or session.terminated:
            raise NotPaired(player.name)
        return session

    # ---- chat ----

    def chat_message(self, sid, data=None, message=None) -> None:
        name = None
        if isinstance(data, dict):
            name, message = data.get('name'), data.get('message')
        elif message is None:
            message = data
        else:
            name = data
        if not isinstance(message, str) or not message.strip():
            raise MalformedPayload('empty chat message')
        me = self.registry.by_sid(sid)
        if me is not None:
            name = me.name
        elif not isinstance(name, str) or not name.strip() or name.strip() == SYSTEM:
            name = 'Anonymous'
        self._push_chat(name.strip(), message.strip()[:self.max_chat_message_len])

    def _system_chat(self, message: str) -> None:
        self._push_chat(SYSTEM, message)

    def _push_chat(self, name: str, message: str) -> None:
        self.chat.append(name, message, ts=self.scheduler.now())
        self.emitter.broadcast('chatMessage', {'name': name, 'message': message})

    # ---- lobby ----

    def lobby_snapshot(self):
        with self.lock:
            return self.registry.snapshot()

    def broadcast_lobby(self) -> None:
        self.emitter.broadcast('updateLobby', self.registry.snapshot())

    def _on_session_terminated(self, session: MatchSession) -> None:
        self.sessions.pop(session.id, None)
        if session.winner is not None:
            winner = session.player_named(session.winner)
            loser = session.opponent_of(winner)
            forfeited = ' (forfeit)' if session.termination_reason == FORFEIT_WIN else ''
            self._system_chat(f"Match result: {winner.name} defeated {loser.name}{forfeited}.")
            if self.leaderboard is not None and session.termination_reason in DECIDED_REASONS:
                for p in session.players:
                    self.spawn(self.leaderboard.submit, {'name': p.name, 'games': p.games, 'wins': p.wins})
        # Unpaired players without a connection are not kept around.
        for p in session.players:
            if not p.connected:
                self.registry.remove(p.name)
        self.broadcast_lobby()
