from __future__ import annotations

import json
import logging
import urllib.request
from typing import Iterable, Optional, Protocol

from plans.core.config import settings
from plans.core.db import SessionLocal
from plans.models.enums import NotificationKind
from plans.models.notification import Notification
from plans.services.identity import ParticipantRef

log = logging.getLogger("plans.notify")


class NotificationDispatcher(Protocol):
    def notify(
        self,
        recipient: ParticipantRef,
        kind: NotificationKind,
        content: str,
        link: str | None = None,
    ) -> None: ...


def push(
    recipient: ParticipantRef,
    kind: NotificationKind,
    content: str,
    *,
    link: str | None = None,
    url: Optional[str] = None,
    secret: Optional[str] = None,
) -> bool:
    """Best-effort push via the external delivery service.

    Returns True if the service accepted the payload, else False. Never raises.
    """
    url = url or settings.PUSH_SERVICE_URL
    secret = secret if secret is not None else settings.PUSH_SERVICE_SECRET
    if not url:
        return False

    try:
        data_obj = {
            "recipient": {"kind": recipient.kind.value, "id": recipient.id},
            "kind": kind.value,
            "content": content,
        }
        if link:
            data_obj["link"] = settings.APP_BASE_URL.rstrip("/") + link if link.startswith("/") else link

        payload = json.dumps(data_obj, ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(
            url.rstrip("/") + "/notify",
            data=payload,
            method="POST",
            headers={
                "Content-Type": "application/json",
                **({"X-Push-Secret": secret} if secret else {}),
            },
        )
        with urllib.request.urlopen(req, timeout=5) as resp:
            body = resp.read().decode("utf-8", errors="ignore")
            if 200 <= resp.status < 300:
                if not body:
                    return True
                try:
                    js = json.loads(body)
                    return bool(js.get("ok", True))
                except ValueError:
                    return True
            log.warning("push notify failed status=%s body=%s", resp.status, body[:300])
            return False
    except Exception as e:
        log.exception("push notify exception: %s", e)
        return False


class InboxDispatcher:
    """Stores the notification in the recipient's inbox, then tries a push.

    Uses its own session so a failure here can never touch the caller's
    transaction.
    """

    def __init__(self, session_factory=None, *, push_url: str | None = None, push_secret: str | None = None):
        self.session_factory = session_factory or SessionLocal
        self.push_url = push_url
        self.push_secret = push_secret

    def notify(
        self,
        recipient: ParticipantRef,
        kind: NotificationKind,
        content: str,
        link: str | None = None,
    ) -> None:
        with self.session_factory() as db:
            db.add(Notification(kind=kind.value, content=content, link=link, **recipient.columns()))
            db.commit()

        if self.push_url:
            push(recipient, kind, content, link=link, url=self.push_url, secret=self.push_secret)


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; tests override it with a recorder."""
    return InboxDispatcher(push_url=settings.PUSH_SERVICE_URL, push_secret=settings.PUSH_SERVICE_SECRET)


def fan_out(
    dispatcher: NotificationDispatcher,
    recipients: Iterable[ParticipantRef],
    *,
    kind: NotificationKind,
    content: str,
    link: str | None = None,
) -> int:
    """Fire-and-forget delivery. Failures are logged, never raised."""
    sent = 0
    for r in recipients:
        try:
            dispatcher.notify(r, kind, content, link)
        except Exception:
            log.exception("notify failed recipient=%s kind=%s link=%s", r, kind.value, link)
            continue
        sent += 1
    return sent
