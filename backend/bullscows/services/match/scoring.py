import string
from collections import Counter
from typing import NamedTuple

CODE_LENGTH = 4


class Score(NamedTuple):
    bulls: int
    cows: int

    def to_dict(self):
        return {'bulls': self.bulls, 'cows': self.cows}


def is_valid_code(value, length: int = CODE_LENGTH) -> bool:
    """True for a string of ``length`` mutually distinct decimal digits."""
    if not isinstance(value, str) or len(value) != length:
        return False
    if any(ch not in string.digits for ch in value):
        return False
    return len(set(value)) == length


def evaluate(guess: str, secret: str) -> Score:
    """Score ``guess`` against ``secret``.

    Bulls are positional matches. Cows are counted per symbol over the
    non-bull positions, bounded by the smaller of the two counts, so a
    repeated symbol is never credited more often than it occurs on both
    sides.
    """
    bulls = 0
    guess_rest: Counter = Counter()
    secret_rest: Counter = Counter()
    for g, s in zip(guess, secret):
        if g == s:
            bulls += 1
        else:
            guess_rest[g] += 1
            secret_rest[s] += 1
    cows = sum(min(count, secret_rest[symbol]) for symbol, count in guess_rest.items())
    return Score(bulls, cows)
