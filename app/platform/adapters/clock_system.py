from datetime import datetime, timezone
from app.platform.ports.clock import ClockPort

class SystemClock(ClockPort):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
