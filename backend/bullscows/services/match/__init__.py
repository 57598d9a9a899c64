"""Match core: scoring, timers, identity, sessions and routing.

Pure(ish) domain logic with no Flask imports. The transport layer hands
it an emitter (``send``/``broadcast``) and a scheduler and calls
``SessionCoordinator.dispatch`` for every inbound event.
"""
from .coordinator import SessionCoordinator
from .errors import (
    InvalidChallenge,
    InvalidIdentity,
    LobbyFull,
    MalformedPayload,
    MatchError,
    NameCollision,
    NotPaired,
    NotYourTurn,
    WrongPhase,
)
from .registry import IdentityRegistry, Player, Presence
from .scoring import Score, evaluate, is_valid_code
from .session import MatchSession, MatchSettings, MatchState
from .timers import ManualScheduler, SocketIOScheduler, TimerSlot
