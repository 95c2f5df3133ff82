"""
Notification Channels

The alert pipeline only sees `dispatch(recipients, template_kind, params)`.
One dispatch is one message: the first recipient goes in `to`, the rest
in `bcc`, so a transition never fans out into per-recipient sends.
Channels raise NotificationDispatchFailure; they never retry.
"""

import abc
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from src.config.settings import AlertSettings
from src.errors import NotificationDispatchFailure

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DispatchOutcome:
    template_kind: str
    recipients: int
    message_id: Optional[str] = None


@dataclass(frozen=True)
class Message:
    to: str
    bcc: List[str]
    subject: str
    template: str
    params: Dict[str, Any]
    
    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to": self.to,
            "subject": self.subject,
            "template": self.template,
            "params": self.params,
        }
        if self.bcc:
            payload["bcc"] = self.bcc
        return payload


def build_message(recipients: Sequence[str], template_kind: str, params: Dict[str, Any]) -> Message:
    if not recipients:
        raise NotificationDispatchFailure(template_kind, "no recipients")
    subject = params.get("subject") or template_kind
    body_params = {k: v for k, v in params.items() if k != "subject"}
    return Message(
        to=recipients[0],
        bcc=list(recipients[1:]),
        subject=subject,
        template=template_kind,
        params=body_params,
    )


class AbstractNotifications(abc.ABC):
    
    @abc.abstractmethod
    async def dispatch(
        self,
        recipients: Sequence[str],
        template_kind: str,
        params: Dict[str, Any],
    ) -> DispatchOutcome:
        raise NotImplementedError
    
    async def close(self) -> None:
        return None


class LoggingNotifications(AbstractNotifications):
    """Writes each message to the structured log instead of sending it."""
    
    async def dispatch(
        self,
        recipients: Sequence[str],
        template_kind: str,
        params: Dict[str, Any],
    ) -> DispatchOutcome:
        message = build_message(recipients, template_kind, params)
        logger.info(
            "Notification dispatched",
            channel="log",
            template=message.template,
            subject=message.subject,
            to=message.to,
            bcc=len(message.bcc),
        )
        return DispatchOutcome(template_kind=template_kind, recipients=len(recipients))


class HttpRelayNotifications(AbstractNotifications):
    """POSTs one JSON message per dispatch to a mail relay."""
    
    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
    
    async def dispatch(
        self,
        recipients: Sequence[str],
        template_kind: str,
        params: Dict[str, Any],
    ) -> DispatchOutcome:
        message = build_message(recipients, template_kind, params)
        try:
            response = await self._client.post(self.url, json=message.to_dict(), headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationDispatchFailure(
                template_kind, f"relay returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise NotificationDispatchFailure(template_kind, f"{type(e).__name__}: {e}") from e
        
        message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            message_id = response.json().get("id")
        
        logger.info(
            "Notification relayed",
            template=template_kind,
            recipients=len(recipients),
            message_id=message_id,
        )
        return DispatchOutcome(template_kind=template_kind, recipients=len(recipients), message_id=message_id)
    
    async def close(self) -> None:
        await self._client.aclose()


def build_channel(alerts: AlertSettings) -> AbstractNotifications:
    if alerts.channel == "relay":
        if not alerts.relay_url:
            raise ValueError("ALERTS_RELAY_URL is required for the relay channel")
        token = alerts.relay_token.get_secret_value() if alerts.relay_token else None
        return HttpRelayNotifications(alerts.relay_url, token=token, timeout=alerts.relay_timeout_seconds)
    return LoggingNotifications()
