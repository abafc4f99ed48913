import time as time_module
from datetime import UTC, datetime


class Now:
    @staticmethod
    def as_iso() -> str:
        """Return the current UTC time as an ISO-8601 string."""

        return datetime.now(UTC).isoformat()

    @staticmethod
    def as_milliseconds() -> int:
        """Return the current wall-clock time as integer milliseconds."""

        return int(time_module.time() * 1000)
