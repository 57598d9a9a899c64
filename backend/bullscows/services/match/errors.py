"""Errors raised by the match core.

The coordinator catches every ``MatchError`` at the transport seam. Only
``NameCollision`` and ``LobbyFull`` produce a reply to the caller; the
rest are dropped without mutating anything.
"""


class MatchError(Exception):
    """Base class for recoverable, per-event failures."""


class NameCollision(MatchError):
    def __init__(self, name: str):
        super().__init__(f"name {name!r} is taken")
        self.name = name


class LobbyFull(MatchError):
    def __init__(self, limit: int):
        super().__init__(f"lobby is full ({limit} players)")
        self.limit = limit


class InvalidIdentity(MatchError):
    """Event arrived on a connection that has no registered name."""


class NotPaired(MatchError):
    """Match action from a player with no live session."""


class NotYourTurn(MatchError):
    pass


class MalformedPayload(MatchError):
    """Secret, guess, name or chat payload has the wrong shape."""


class InvalidChallenge(MatchError):
    """Challenge or accept between players that cannot be paired."""


class WrongPhase(MatchError):
    """Action is not allowed in the session's current state."""
