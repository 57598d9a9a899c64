import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .errors import InvalidIdentity, LobbyFull, MalformedPayload, NameCollision
from .timers import DISCONNECT_GRACE, TimerSlot

COLLISION_SUFFIX = 'suffix'
COLLISION_REJECT = 'reject'

_SUFFIX_RE = re.compile(r'^(.+?)\s*\((\d+)\)\s*$')


class Presence(str, Enum):
    CONNECTED = 'connected'
    GRACE_PERIOD = 'grace_period'
    REMOVED = 'removed'


class Player:
    """A named identity; outlives any single socket connection."""

    def __init__(self, name: str, device_id: Optional[str] = None, sid: Optional[str] = None, logger=None):
        self.name = name
        self.device_id = device_id
        self.sid = sid
        self.presence = Presence.CONNECTED
        self.match = None
        self.secret: Optional[str] = None
        self.has_turn = False
        self.role: Optional[str] = None
        self.games = 0
        self.wins = 0
        self.grace_timer = TimerSlot(DISCONNECT_GRACE, f"player={name}", logger=logger)

    @property
    def connected(self) -> bool:
        return self.sid is not None

    @property
    def in_game(self) -> bool:
        return self.match is not None

    @property
    def grace_deadline(self) -> Optional[float]:
        return self.grace_timer.deadline

    def reset_match_state(self) -> None:
        self.match = None
        self.secret = None
        self.has_turn = False
        self.role = None

    def to_lobby_entry(self) -> dict:
        opponent = self.match.opponent_of(self) if self.match else None
        return {
            'name': self.name,
            'inGame': self.in_game,
            'opponent': opponent.name if opponent else None,
        }

    def __repr__(self):
        return f"<Player {self.name!r} presence={self.presence.value} sid={self.sid}>"


@dataclass
class Registration:
    player: Player
    requested: str
    created: bool
    replaced_sid: Optional[str] = None

    @property
    def name(self) -> str:
        return self.player.name

    @property
    def renamed(self) -> bool:
        return self.player.name != self.requested.strip()


def normalize_base_name(name) -> str:
    """Trim and strip a trailing disambiguation suffix such as ``" (2)"``."""
    trimmed = str(name or '').strip()
    m = _SUFFIX_RE.match(trimmed)
    return m.group(1) if m else trimmed


class IdentityRegistry:
    """Players keyed by name, plus the sid -> name binding pointer.

    The two maps are kept apart on purpose: a reconnect rebinds the
    pointer to a new sid without recreating the player.
    """

    def __init__(self, max_players: int = 200, collision_policy: str = COLLISION_SUFFIX, logger=None):
        if collision_policy not in (COLLISION_SUFFIX, COLLISION_REJECT):
            raise ValueError(f"unknown name collision policy: {collision_policy!r}")
        self.max_players = max_players
        self.collision_policy = collision_policy
        self.logger = logger
        self._players: Dict[str, Player] = {}
        self._sid_to_name: Dict[str, str] = {}

    def __len__(self):
        return len(self._players)

    def __contains__(self, name):
        return name in self._players

    def get(self, name) -> Optional[Player]:
        return self._players.get(name)

    def by_sid(self, sid) -> Optional[Player]:
        name = self._sid_to_name.get(sid)
        return self._players.get(name) if name else None

    def require(self, sid) -> Player:
        player = self.by_sid(sid)
        if player is None:
            raise InvalidIdentity(f"sid {sid} has no registered name")
        return player

    def players(self) -> List[Player]:
        return list(self._players.values())

    def register(self, requested_name, device_id, sid) -> Registration:
        if not isinstance(requested_name, str):
            raise MalformedPayload('name must be a string')
        base = normalize_base_name(requested_name)
        if not base:
            raise MalformedPayload('name is required')

        owned = self._owned_record(requested_name.strip(), base, device_id, sid)
        if owned is not None:
            assigned = owned.name
        elif base not in self._players:
            assigned = base
        elif self.collision_policy == COLLISION_REJECT:
            raise NameCollision(base)
        else:
            assigned = self._unique_name(base)

        # One identity per socket: the name this sid held before is dropped.
        previous = self._sid_to_name.get(sid)
        if previous == assigned:
            previous = None
        if previous:
            prior = self._players.get(previous)
            if prior is not None and prior.in_game:
                raise InvalidIdentity(f"sid {sid} is bound to {previous!r} mid-match")

        occupied = len(self._players) - (1 if previous in self._players else 0)
        if assigned not in self._players and occupied >= self.max_players:
            raise LobbyFull(self.max_players)
        if previous:
            self.remove(previous)

        player = self._players.get(assigned)
        created = player is None
        replaced_sid = None
        if created:
            player = Player(assigned, device_id=device_id or None, sid=sid, logger=self.logger)
            self._players[assigned] = player
        else:
            if player.sid and player.sid != sid:
                replaced_sid = player.sid
                self._sid_to_name.pop(player.sid, None)
            player.sid = sid
            player.device_id = device_id or player.device_id
            player.presence = Presence.CONNECTED
        self._sid_to_name[sid] = assigned
        return Registration(player, requested_name, created, replaced_sid)

    def unbind(self, name, graceful: bool = True) -> Optional[Player]:
        """Detach ``name`` from its connection.

        Graceful unbinding deletes the record; otherwise the record stays
        in the grace period until reclaimed or removed.
        """
        player = self._players.get(name)
        if player is None:
            return None
        if player.sid is not None:
            self._sid_to_name.pop(player.sid, None)
            player.sid = None
        if graceful:
            self.remove(name)
        else:
            player.presence = Presence.GRACE_PERIOD
        return player

    def remove(self, name) -> Optional[Player]:
        player = self._players.pop(name, None)
        if player is None:
            return None
        if player.sid is not None:
            self._sid_to_name.pop(player.sid, None)
            player.sid = None
        player.grace_timer.cancel()
        player.presence = Presence.REMOVED
        return player

    def snapshot(self) -> List[dict]:
        return [p.to_lobby_entry() for p in self._players.values()]

    def _unique_name(self, base: str) -> str:
        for i in range(2, 1000):
            candidate = f"{base} ({i})"
            if candidate not in self._players:
                return candidate
        raise NameCollision(base)

    def _owned_record(self, requested: str, base: str, device_id, sid) -> Optional[Player]:
        """Record this caller may rebind: same socket, or same device token.

        Looks at the exact requested name first, then the base name and
        its ``" (N)"`` variants, so a suffixed player can reclaim.
        """
        candidates = [requested, base] + [
            name for name in self._players
            if name not in (requested, base) and normalize_base_name(name) == base
        ]
        for name in candidates:
            player = self._players.get(name)
            if player is None:
                continue
            if player.sid is not None and player.sid == sid:
                return player
            if player.device_id and device_id and player.device_id == device_id:
                return player
        return None
