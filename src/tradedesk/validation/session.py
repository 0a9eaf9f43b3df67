"""Trading-session windows in broker server time.

Windows are [start, end) in server hours. The server clock is UTC shifted by
a fixed offset; time is only ever read through the injected Clock.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..config import SessionConfig
from ..market import Clock, SystemClock


SESSION_NAMES = ("asia", "london", "new_york")


class SessionClock:
    """Answers which sessions are open at a given instant."""

    def __init__(self, config: Optional[SessionConfig] = None, clock: Optional[Clock] = None):
        self.config = config or SessionConfig()
        self.clock = clock or SystemClock()
        self._tz = timezone(timedelta(hours=self.config.server_utc_offset_hours))

    def server_time(self, moment: Optional[datetime] = None) -> datetime:
        """Convert an instant to server time. Naive datetimes are taken as UTC."""
        moment = moment or self.clock.now()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self._tz)

    def window(self, name: str) -> tuple[int, int]:
        if name not in SESSION_NAMES:
            raise ValueError(f"Unknown session: {name}")
        return getattr(self.config, name)

    def in_session(self, name: str, moment: Optional[datetime] = None) -> bool:
        start, end = self.window(name)
        hour = self.server_time(moment).hour
        if start <= end:
            return start <= hour < end
        # window wraps past midnight
        return hour >= start or hour < end

    def active_sessions(self, moment: Optional[datetime] = None) -> List[str]:
        return [name for name in SESSION_NAMES if self.in_session(name, moment)]

    def in_any(self, names, moment: Optional[datetime] = None) -> bool:
        return any(self.in_session(name, moment) for name in names)
