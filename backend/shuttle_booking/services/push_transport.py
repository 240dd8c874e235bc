"""
Push-notification transport.

The real transport (FCM, OneSignal, ...) lives outside this service. The
default implementation only logs the payload it would deliver. Tests and
deployments swap it with ``set_push_transport``.
"""

from typing import Any, Optional, Protocol

from shuttle_booking.core.config import get_settings
from shuttle_booking.core.logging import get_logger

logger = get_logger(__name__)


class PushTransport(Protocol):
    async def send(
        self,
        device_tokens: list[str],
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> bool: ...


class LoggingPushTransport:
    async def send(
        self,
        device_tokens: list[str],
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> bool:
        if not get_settings().PUSH_NOTIFICATIONS_ENABLED:
            logger.info("push_disabled", title=title)
            return False
        if not device_tokens:
            logger.info("push_skipped_no_device", title=title)
            return False

        logger.info(
            "push_sent",
            device_count=len(device_tokens),
            title=title,
            body=body,
            data=data or {},
        )
        return True


_transport: PushTransport = LoggingPushTransport()


def get_push_transport() -> PushTransport:
    return _transport


def set_push_transport(transport: PushTransport) -> None:
    global _transport
    _transport = transport
