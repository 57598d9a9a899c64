import logging

import requests

logger = logging.getLogger(__name__)


class LeaderboardReporter:
    """Posts per-player totals to an external leaderboard.

    Submission is best effort: failures are logged and reported as
    ``False``, never raised into the match flow.
    """

    def __init__(self, url: str = '', timeout: float = 5.0, session=None, log=None):
        self.url = url or ''
        self.timeout = timeout
        self.http = session or requests.Session()
        self.logger = log or logger

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def submit(self, entry: dict) -> bool:
        if not self.enabled:
            return False
        payload = {
            'name': entry.get('name'),
            'games': int(entry.get('games', 0)),
            'wins': int(entry.get('wins', 0)),
        }
        try:
            resp = self.http.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            self.logger.warning(f"[leaderboard] submit failed for {payload['name']}: {e}")
            return False
        self.logger.info(f"[leaderboard] submitted name={payload['name']} games={payload['games']} wins={payload['wins']}")
        return True
