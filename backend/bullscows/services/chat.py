import time
from collections import deque
from typing import List, Optional

SYSTEM = 'SYSTEM'


class ChatLog:
    """Bounded lobby chat buffer; the oldest entries fall off first."""

    def __init__(self, max_entries: int = 200):
        self.max_entries = max_entries
        self._entries = deque(maxlen=max_entries)

    def __len__(self):
        return len(self._entries)

    def append(self, name: str, message: str, ts: Optional[float] = None) -> dict:
        entry = {'name': name, 'message': message, 'ts': time.time() if ts is None else ts}
        self._entries.append(entry)
        return entry

    def recent(self, limit: Optional[int] = None) -> List[dict]:
        entries = list(self._entries)
        if limit is None:
            return entries
        if limit <= 0:
            return []
        return entries[-limit:]
