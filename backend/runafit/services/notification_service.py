"""
Notification service abstraction for client-facing notices.

Delivery channels (push, WhatsApp, e-mail) live outside this service; the
default provider only writes the notice to the log. The service also keeps
the in-memory "already warned in this session" register used for credit
warnings.
"""
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Optional
from uuid import UUID

from runafit.lib.logging import get_logger
from runafit.lib.settings import settings


logger = get_logger(__name__)


class NotificationProvider(ABC):
    """
    Abstract base class for notification delivery providers.
    """

    @abstractmethod
    def send(self, client_id: UUID, message: str, **kwargs) -> bool:
        """
        Deliver a notice to a client.

        Args:
            client_id: Recipient
            message: Text to deliver
            **kwargs: Provider-specific parameters

        Returns:
            True if sent successfully, False otherwise
        """
        pass

    @property
    @abstractmethod
    def channel(self) -> str:
        """Return the channel this provider supports."""
        pass


class LogNotificationProvider(NotificationProvider):
    """
    Log-only provider used in development and as the default.
    Keeps every sent notice in `sent` so callers can inspect it.
    """

    def __init__(self):
        self.sent: list[dict] = []

    @property
    def channel(self) -> str:
        return "log"

    def send(self, client_id: UUID, message: str, **kwargs) -> bool:
        self.sent.append({"client_id": client_id, "message": message, **kwargs})
        logger.info(
            "Notification recorded",
            extra={"client_id": str(client_id), "notice": message, "channel": self.channel, **kwargs},
        )
        return True


class NotificationService:
    """
    Sends notices through a provider, optionally once per session.

    Register entries live as long as a session token does
    (settings.jwt_expiration_minutes); older entries are pruned on access.
    """

    def __init__(
        self,
        provider: Optional[NotificationProvider] = None,
        session_ttl_seconds: Optional[float] = None,
        timer=time.monotonic,
    ):
        self.provider = provider or LogNotificationProvider()
        self.session_ttl_seconds = (
            session_ttl_seconds if session_ttl_seconds is not None
            else settings.jwt_expiration_minutes * 60
        )
        self._timer = timer
        self._delivered: dict[tuple[str, UUID], float] = {}
        self._lock = Lock()

    def _prune(self) -> None:
        """Drop entries older than the session lifetime. Caller holds the lock."""
        cutoff = self._timer() - self.session_ttl_seconds
        stale = [key for key, sent_at in self._delivered.items() if sent_at <= cutoff]
        for key in stale:
            del self._delivered[key]

    def already_notified(self, session_id: str, client_id: UUID) -> bool:
        with self._lock:
            self._prune()
            return (session_id, client_id) in self._delivered

    def tracked_count(self) -> int:
        """Register entries still inside the session lifetime."""
        with self._lock:
            self._prune()
            return len(self._delivered)

    def notify_once(self, session_id: str, client_id: UUID, message: str, **context) -> bool:
        """
        Send `message` unless this client was already notified in this session.

        Returns:
            True when the notice was sent now, False when it was suppressed
            or the provider failed.
        """
        key = (session_id, client_id)
        with self._lock:
            self._prune()
            if key in self._delivered:
                logger.debug("Notice suppressed, already sent in session", extra={
                    "client_id": str(client_id),
                    "session_id": session_id,
                })
                return False
            self._delivered[key] = self._timer()

        sent = self.provider.send(client_id, message, **context)
        if not sent:
            # Let a later request in the same session try again
            with self._lock:
                self._delivered.pop(key, None)
            logger.warning("Notice delivery failed", extra={"client_id": str(client_id)})
        return sent

    def reset(self) -> None:
        """Forget every session register (for testing)."""
        with self._lock:
            self._delivered.clear()


# Global singleton instance
_notification_service: Optional[NotificationService] = None
_service_lock = Lock()


def get_notification_service() -> NotificationService:
    """Get global notification service singleton."""
    global _notification_service
    if _notification_service is None:
        with _service_lock:
            if _notification_service is None:
                _notification_service = NotificationService()
    return _notification_service


def set_notification_service(service: Optional[NotificationService]) -> None:
    """Replace the global service (None restores the default on next use)."""
    global _notification_service
    with _service_lock:
        _notification_service = service
