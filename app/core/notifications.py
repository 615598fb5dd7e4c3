"""Notification sinks: how collect-fee outcomes reach the counter UI."""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, List

from app.core.enums import NotificationKind

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NotificationKind.SUCCESS: logging.INFO,
    NotificationKind.INFO: logging.INFO,
    NotificationKind.WARNING: logging.WARNING,
    NotificationKind.ERROR: logging.WARNING,
}


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    title: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class CollectingNotificationSink:
    """Collects notifications for one request so they can be returned in the response body."""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, kind: NotificationKind, title: str, message: str) -> None:
        kind = NotificationKind(kind)
        self.notifications.append(Notification(kind=kind, title=title, message=message))
        logger.log(_LOG_LEVELS[kind], "%s: %s", title, message)

    def to_list(self) -> List[Dict[str, str]]:
        return [n.to_dict() for n in self.notifications]
