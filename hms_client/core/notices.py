"""
Transient user notices.

Every screen owns one NoticeCenter. Successful actions and caught failures
post a notice; notices with ``auto_hide`` expire on their own after the
configured duration.
"""

from typing import Callable, List, Optional
from datetime import datetime, timedelta, timezone
import enum
import itertools
import logging

from hms_client.core.config import settings

logger = logging.getLogger(__name__)


class Severity(str, enum.Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notice:
    __slots__ = ("id", "message", "severity", "created_at", "auto_hide")

    def __init__(
        self,
        id: int,
        message: str,
        severity: Severity,
        created_at: datetime,
        auto_hide: Optional[timedelta],
    ):
        self.id = id
        self.message = message
        self.severity = severity
        self.created_at = created_at
        self.auto_hide = auto_hide

    def expired(self, now: datetime) -> bool:
        if self.auto_hide is None:
            return False
        return now - self.created_at >= self.auto_hide

    def __repr__(self) -> str:
        return f"Notice({self.severity.value}: {self.message!r})"


class NoticeCenter:
    def __init__(
        self,
        auto_hide_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        seconds = settings.NOTICE_AUTO_HIDE_SECONDS if auto_hide_seconds is None else auto_hide_seconds
        self._auto_hide = timedelta(seconds=seconds) if seconds > 0 else None
        self._clock = clock
        self._counter = itertools.count(1)
        self._notices: List[Notice] = []

    def post(self, message: str, severity: Severity = Severity.INFO, sticky: bool = False) -> Notice:
        notice = Notice(
            id=next(self._counter),
            message=message,
            severity=severity,
            created_at=self._clock(),
            auto_hide=None if sticky else self._auto_hide,
        )
        self._notices.append(notice)
        return notice

    def success(self, message: str) -> Notice:
        return self.post(message, Severity.SUCCESS)

    def error(self, message: str) -> Notice:
        return self.post(message, Severity.ERROR)

    def active(self) -> List[Notice]:
        """Notices still visible; expired ones are dropped."""
        now = self._clock()
        self._notices = [n for n in self._notices if not n.expired(now)]
        return list(self._notices)

    @property
    def latest(self) -> Optional[Notice]:
        visible = self.active()
        return visible[-1] if visible else None

    def dismiss(self, notice_id: Optional[int] = None) -> None:
        if notice_id is None:
            self._notices.clear()
        else:
            self._notices = [n for n in self._notices if n.id != notice_id]
