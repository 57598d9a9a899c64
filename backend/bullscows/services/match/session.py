import itertools
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .errors import MalformedPayload, NotYourTurn, WrongPhase
from .registry import Player
from .scoring import CODE_LENGTH, evaluate, is_valid_code
from .timers import STARTUP_GRACE, TURN, Scheduler, TimerSlot

WIN = 'win'
LOSE = 'lose'
FORFEIT_WIN = 'forfeit_win'
FORFEIT_LOSE = 'forfeit_lose'
OPPONENT_DISCONNECTED = 'opponent_disconnected'
GAME_CANCELED = 'game_canceled'
NO_CONTEST = 'no_contest'

DECIDED_REASONS = (WIN, FORFEIT_WIN, OPPONENT_DISCONNECTED)

CHALLENGER = 'challenger'
CHALLENGED = 'challenged'

_log = logging.getLogger(__name__)
_session_ids = itertools.count(1)


class MatchState(str, Enum):
    AWAITING_SECRETS = 'awaiting_secrets'
    ACTIVE = 'active'
    PAUSED = 'paused'
    TERMINATED = 'terminated'


@dataclass(frozen=True)
class MatchSettings:
    turn_duration: float = 60
    startup_grace: float = 60
    disconnect_grace: float = 30
    return_to_lobby: int = 10

    @classmethod
    def from_config(cls, config) -> 'MatchSettings':
        return cls(
            turn_duration=float(config.get('TURN_DURATION_SEC', cls.turn_duration)),
            startup_grace=float(config.get('STARTUP_GRACE_SEC', cls.startup_grace)),
            disconnect_grace=float(config.get('DISCONNECT_GRACE_SEC', cls.disconnect_grace)),
            return_to_lobby=int(config.get('RETURN_TO_LOBBY_SEC', cls.return_to_lobby)),
        )


class MatchSession:
    """State machine for one pairing.

    ``phase`` moves awaiting_secrets -> active -> terminated. ``state``
    additionally reports ``paused`` while either participant has no live
    connection; the underlying phase is kept and resumes on reconnect.

    The session owns the pairing. Players only hold a back-reference in
    ``Player.match``, cleared when the session terminates.
    """

    def __init__(
        self,
        challenger: Player,
        challenged: Player,
        *,
        emitter,
        scheduler: Scheduler,
        settings: Optional[MatchSettings] = None,
        on_terminated: Optional[Callable[['MatchSession'], None]] = None,
        rng: Optional[random.Random] = None,
        logger=None,
    ):
        if challenger is challenged or challenger.name == challenged.name:
            raise ValueError('a match needs two distinct players')
        self.id = next(_session_ids)
        self.players = (challenger, challenged)
        self.emitter = emitter
        self.scheduler = scheduler
        self.settings = settings or MatchSettings()
        self.on_terminated = on_terminated
        self.rng = rng or random.Random()
        self.logger = logger or _log

        self.phase = MatchState.AWAITING_SECRETS
        self.turn_holder: Optional[str] = None
        self.started_at = scheduler.now()
        self.termination_reason: Optional[str] = None
        self.winner: Optional[str] = None

        challenger.role = CHALLENGER
        challenged.role = CHALLENGED
        for p in self.players:
            p.match = self
            p.secret = None
            p.has_turn = False

        label = f"match={self.id}"
        self.startup_timer = TimerSlot(STARTUP_GRACE, label, logger=self.logger)
        self.turn_timer = TimerSlot(TURN, label, logger=self.logger)
        self.startup_timer.arm(scheduler, self.settings.startup_grace, self._on_startup_expired)
        self.logger.info(f"[match-create] match={self.id} challenger={challenger.name} challenged={challenged.name}")

    def __repr__(self):
        a, b = self.players
        return f"<MatchSession {self.id} {a.name} vs {b.name} state={self.state.value}>"

    @property
    def state(self) -> MatchState:
        if self.phase is MatchState.TERMINATED:
            return self.phase
        if any(p.sid is None for p in self.players):
            return MatchState.PAUSED
        return self.phase

    @property
    def terminated(self) -> bool:
        return self.phase is MatchState.TERMINATED

    def opponent_of(self, player: Player) -> Player:
        a, b = self.players
        return b if player is a else a

    def player_named(self, name: str) -> Optional[Player]:
        for p in self.players:
            if p.name == name:
                return p
        return None

    # ---- inbound actions ----

    def lock_secret(self, player: Player, secret) -> None:
        if self.phase is not MatchState.AWAITING_SECRETS:
            raise WrongPhase(f"match {self.id} is {self.phase.value}")
        if player.secret is not None:
            raise WrongPhase(f"{player.name} already locked a secret")
        if not is_valid_code(secret, CODE_LENGTH):
            raise MalformedPayload('secret must be 4 distinct digits')

        player.secret = secret
        opponent = self.opponent_of(player)
        self.logger.info(f"[secret-locked] match={self.id} player={player.name}")
        if opponent.secret is None:
            self._send(opponent, 'opponentLocked')
            self.sync(player)
        else:
            self._begin_turns()

    def submit_guess(self, player: Player, guess) -> dict:
        if self.phase is not MatchState.ACTIVE:
            raise WrongPhase(f"match {self.id} is {self.phase.value}")
        if not player.has_turn:
            raise NotYourTurn(player.name)
        if not is_valid_code(guess, CODE_LENGTH):
            raise MalformedPayload('guess must be 4 distinct digits')

        opponent = self.opponent_of(player)
        score = evaluate(guess, opponent.secret)
        result = {'guess': guess, **score.to_dict()}
        self.logger.info(
            f"[guess] match={self.id} player={player.name} bulls={score.bulls} cows={score.cows}"
        )
        self._send(player, 'guessResult', result)
        self._send(opponent, 'opponentGuess', result)

        if score.bulls == CODE_LENGTH:
            self.terminate({player.name: WIN, opponent.name: LOSE}, winner=player)
        else:
            self._give_turn(opponent)
        return result

    # ---- presence ----

    def participant_disconnected(self, player: Player) -> None:
        if self.terminated:
            return
        player.grace_timer.arm(
            self.scheduler,
            self.settings.disconnect_grace,
            lambda: self._on_grace_expired(player.name),
        )
        self.logger.info(f"[match-paused] match={self.id} player={player.name}")
        self.sync(self.opponent_of(player))

    def participant_reconnected(self, player: Player) -> None:
        if self.terminated:
            return
        player.grace_timer.cancel()
        self.logger.info(f"[match-resumed] match={self.id} player={player.name}")
        self._send(player, 'redirectToMatch', {'opponent': self.opponent_of(player).name})
        for p in self.players:
            self.sync(p)

    # ---- state projection ----

    def state_for(self, player: Player) -> dict:
        opponent = self.opponent_of(player)
        return {
            'inGame': not self.terminated,
            'matchId': self.id,
            'state': self.state.value,
            'you': player.name,
            'opponent': opponent.name,
            'role': player.role,
            'yourTurn': player.has_turn,
            'youLocked': player.secret is not None,
            'yourSecret': player.secret,
            'opponentLocked': opponent.secret is not None,
            'opponentConnected': opponent.connected,
            'turnDeadline': self.turn_timer.deadline,
            'lockDeadline': self.startup_timer.deadline,
            'graceDeadline': opponent.grace_deadline,
        }

    def sync(self, player: Player) -> None:
        self._send(player, 'syncState', self.state_for(player))

    # ---- transitions ----

    def _begin_turns(self) -> None:
        self.startup_timer.cancel()
        first = self.rng.choice(self.players)
        second = self.opponent_of(first)
        first.has_turn = True
        second.has_turn = False
        self.turn_holder = first.name
        self.phase = MatchState.ACTIVE
        self.logger.info(f"[match-start] match={self.id} first={first.name}")
        self._arm_turn_timer(first)
        self._send(first, 'startGame', True)
        self._send(second, 'startGame', False)
        self.sync(first)
        self.sync(second)

    def _give_turn(self, player: Player) -> None:
        self.opponent_of(player).has_turn = False
        player.has_turn = True
        self.turn_holder = player.name
        self._arm_turn_timer(player)
        for p in self.players:
            self.sync(p)

    def _arm_turn_timer(self, holder: Player) -> None:
        name = holder.name
        self.turn_timer.arm(self.scheduler, self.settings.turn_duration, lambda: self._on_turn_expired(name))

    def _on_startup_expired(self) -> None:
        if self.phase is not MatchState.AWAITING_SECRETS:
            return
        if all(p.secret is not None for p in self.players):
            return
        for p in self.players:
            self._send(p, 'gameCanceled')
        self.terminate({p.name: GAME_CANCELED for p in self.players})

    def _on_turn_expired(self, name: str) -> None:
        if self.phase is not MatchState.ACTIVE or self.turn_holder != name:
            return
        holder = self.player_named(name)
        if holder is None or not holder.has_turn:
            return
        opponent = self.opponent_of(holder)
        self.terminate({holder.name: FORFEIT_LOSE, opponent.name: FORFEIT_WIN}, winner=opponent)

    def _on_grace_expired(self, name: str) -> None:
        if self.terminated:
            return
        player = self.player_named(name)
        if player is None or player.connected:
            return
        opponent = self.opponent_of(player)
        if not opponent.connected:
            self.logger.info(f"[match-no-contest] match={self.id} both players gone")
            self.terminate({p.name: NO_CONTEST for p in self.players})
            return
        self.terminate({player.name: LOSE, opponent.name: OPPONENT_DISCONNECTED}, winner=opponent)

    def terminate(self, reasons: Dict[str, str], winner: Optional[Player] = None) -> None:
        """Final transition. Idempotent; later calls are ignored."""
        if self.terminated:
            return
        self.phase = MatchState.TERMINATED
        self.winner = winner.name if winner else None
        if winner is not None:
            self.termination_reason = reasons[winner.name]
        else:
            self.termination_reason = next(iter(reasons.values()))

        self.startup_timer.cancel()
        self.turn_timer.cancel()
        for p in self.players:
            p.grace_timer.cancel()

        self.logger.info(
            f"[match-end] match={self.id} reason={self.termination_reason} winner={self.winner}"
        )
        for p in self.players:
            self._send(p, 'gameOver', reasons[p.name])
            self._send(p, 'returnToLobbyIn', self.settings.return_to_lobby)

        if winner is not None:
            for p in self.players:
                p.games += 1
            winner.wins += 1

        self.turn_holder = None
        for p in self.players:
            p.reset_match_state()

        if self.on_terminated is not None:
            self.on_terminated(self)

    def _send(self, player: Player, event: str, data=None) -> None:
        if player.sid is None:
            return
        self.emitter.send(player.sid, event, data)
