"""Availability alerts for woken devices (ntfy.sh, Pushover, email)."""

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Callable, Optional

import httpx

from wakewatch.core.events import DeviceAvailabilityChanged, Event, EventBus

logger = logging.getLogger(__name__)

PUSHOVER_URL = "https://api.pushover.net/1/messages.json"
DEFAULT_NTFY_SERVER = "https://ntfy.sh"
HTTP_TIMEOUT = 10


def send_notification(event: DeviceAvailabilityChanged, notif_config: dict[str, Any]) -> list[str]:
    """
    Tell the user that a woken device came up, or never did.

    Every configured channel is tried; one failing channel does not stop
    the others.

      - ntfy.sh (``ntfy_topic``, optional ``ntfy_server``)
      - Pushover (``pushover_token`` and ``pushover_user``)
      - Email (``smtp`` mapping with at least ``to_addr``)

    Args:
        event: The availability change reported by the wake monitor
        notif_config: The ``settings.notifications`` mapping

    Returns:
        Names of the channels that accepted the message
    """
    if not notif_config:
        return []

    title = _build_subject(event)
    body = _build_body(event)
    delivered: list[str] = []

    topic = notif_config.get("ntfy_topic")
    if topic:
        server = notif_config.get("ntfy_server", DEFAULT_NTFY_SERVER)
        if _send_ntfy(topic, title, body, event.is_available, server=server):
            delivered.append("ntfy")

    token, user = notif_config.get("pushover_token"), notif_config.get("pushover_user")
    if token and user:
        if _send_pushover(token, user, title, body, event.is_available):
            delivered.append("pushover")

    smtp_cfg = notif_config.get("smtp")
    if smtp_cfg and _send_email(smtp_cfg, title, body):
        delivered.append("email")

    return delivered


class Notifier:
    """Bus subscriber that alerts on every DeviceAvailabilityChanged event."""

    def __init__(self, notif_config: dict[str, Any]) -> None:
        self._config = dict(notif_config)
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, bus: EventBus) -> None:
        self._unsubscribe = bus.subscribe(self)

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def __call__(self, event: Event) -> None:
        if isinstance(event, DeviceAvailabilityChanged):
            send_notification(event, self._config)


# ── Message text ──────────────────────────────────────────────────────────────


def _build_subject(event: DeviceAvailabilityChanged) -> str:
    status = "✅ AVAILABLE" if event.is_available else "❌ UNREACHABLE"
    return f"wakewatch {status}: {event.host}"


def _build_body(event: DeviceAvailabilityChanged) -> str:
    verdict = "answered after the wake packet" if event.is_available else "did not answer"
    lines = [f"Device {event.host} {verdict}.", f"At: {event.at.isoformat()}"]
    if event.attempts:
        lines.append(f"Attempts: {event.attempts}")
    return "\n".join(lines)


# ── HTTP channels ─────────────────────────────────────────────────────────────


def _post(channel: str, url: str, **kwargs: Any) -> bool:
    try:
        httpx.post(url, timeout=HTTP_TIMEOUT, **kwargs).raise_for_status()
    except Exception as exc:
        logger.error("%s notification failed: %s", channel, exc)
        return False
    logger.info("%s notification delivered", channel)
    return True


def _send_ntfy(
    topic: str,
    title: str,
    message: str,
    available: bool,
    server: str = DEFAULT_NTFY_SERVER,
) -> bool:
    headers = {
        "Title": title,
        "Priority": "default" if available else "high",
        "Tags": "white_check_mark" if available else "warning",
    }
    return _post(
        "ntfy", f"{server.rstrip('/')}/{topic}", content=message.encode("utf-8"), headers=headers
    )


def _send_pushover(token: str, user: str, title: str, message: str, available: bool) -> bool:
    # Pushover priority 1 bypasses the user's quiet hours.
    data = {
        "token": token,
        "user": user,
        "title": title,
        "message": message,
        "priority": 0 if available else 1,
    }
    return _post("Pushover", PUSHOVER_URL, data=data)


# ── Email ─────────────────────────────────────────────────────────────────────


def _send_email(smtp_cfg: dict[str, Any], subject: str, body: str) -> bool:
    """
    smtp_cfg keys: host, port, user, password, from_addr, to_addr, use_tls
    """
    to_addr = smtp_cfg.get("to_addr")
    if not to_addr:
        logger.warning("Email channel has no 'to_addr', skipping")
        return False

    user = smtp_cfg.get("user")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = smtp_cfg.get("from_addr", user or "wakewatch@localhost")
    msg["To"] = to_addr
    msg.set_content(body)

    host = smtp_cfg.get("host", "localhost")
    port = int(smtp_cfg.get("port", 587))
    try:
        with smtplib.SMTP(host, port, timeout=15) as smtp:
            if smtp_cfg.get("use_tls", True):
                smtp.starttls()
            if user and smtp_cfg.get("password"):
                smtp.login(user, smtp_cfg["password"])
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Email notification to %s failed: %s", to_addr, exc)
        return False
    logger.info("Email notification sent to %s", to_addr)
    return True
