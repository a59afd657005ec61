"""System Clock — production Clock implementation (timezone-aware UTC)."""

from datetime import datetime, timezone


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
