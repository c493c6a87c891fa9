"""
Price Alert Engine - Notification Hub

Multi-channel delivery of trigger events:
- Protocol-based channel abstraction
- Log, console, email, generic webhook, Discord and Slack channels
- Callback channel for integration and tests

Delivery is best effort: a failing channel is logged and counted, never
retried.
"""

import json
import logging
import smtplib
import time
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Callable, List, Optional, Protocol

from .models import Direction, TriggerEvent


logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Protocol for notification channels."""

    @property
    def name(self) -> str:
        """Channel name."""
        ...

    @property
    def directions(self) -> List[Direction]:
        """Condition directions this channel handles."""
        ...

    def send(self, event: TriggerEvent) -> bool:
        """Send a trigger notification. Returns True if successful."""
        ...

    def format_message(self, event: TriggerEvent) -> str:
        """Format an event into a message string."""
        ...


class BaseNotificationChannel(ABC):
    """Base class for notification channels."""

    def __init__(
        self,
        name: str,
        directions: Optional[List[Direction]] = None,
    ):
        """
        Initialize the channel.

        Args:
            name: Channel name
            directions: Directions to handle (None = both)
        """
        self._name = name
        self._directions = directions or list(Direction)

    @property
    def name(self) -> str:
        return self._name

    @property
    def directions(self) -> List[Direction]:
        return self._directions

    def format_message(self, event: TriggerEvent) -> str:
        """
        Format an event into a message string.

        Default implementation creates a structured text message.
        Override for channel-specific formatting.
        """
        condition = event.condition
        lines = [
            f"**Price Alert** - {condition.symbol.upper()}",
            "",
            f"**Price:** ${event.price_at_trigger:,.2f}",
            f"**Threshold:** {condition.direction.value} ${condition.threshold:,.2f}",
            "",
            f"*{event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}*",
        ]
        return "\n".join(lines)

    @abstractmethod
    def send(self, event: TriggerEvent) -> bool:
        """Send a trigger notification."""
        ...


class LogNotificationChannel(BaseNotificationChannel):
    """
    Notification channel that logs trigger events.

    Useful for development, testing, and audit trails.
    """

    def __init__(
        self,
        name: str = "log",
        directions: Optional[List[Direction]] = None,
        log_level: int = logging.INFO,
    ):
        super().__init__(name, directions)
        self.log_level = log_level
        self.logger = logging.getLogger(f"pricealert.notifications.{name}")

    def send(self, event: TriggerEvent) -> bool:
        try:
            self.logger.log(self.log_level, self.format_message(event))
            return True
        except Exception as e:
            self.logger.error(f"Failed to log alert: {e}")
            return False

    def format_message(self, event: TriggerEvent) -> str:
        """Single line for log files."""
        condition = event.condition
        return (
            f"[{condition.direction.value.upper()}] {condition.symbol.upper()} "
            f"price={event.price_at_trigger:.2f} threshold={condition.threshold:.2f} "
            f"id={condition.id} at={event.timestamp.isoformat()}"
        )


class ConsoleNotificationChannel(BaseNotificationChannel):
    """Notification channel that prints events to stdout."""

    def __init__(
        self,
        name: str = "console",
        directions: Optional[List[Direction]] = None,
        use_colors: bool = True,
    ):
        super().__init__(name, directions)
        self.use_colors = use_colors

    def send(self, event: TriggerEvent) -> bool:
        try:
            print(self.format_message(event))
            return True
        except Exception as e:
            logger.error(f"Failed to print alert: {e}")
            return False

    def format_message(self, event: TriggerEvent) -> str:
        """Format for console with optional colors."""
        colors = {
            Direction.ABOVE: "\033[92m",  # Green
            Direction.BELOW: "\033[91m",  # Red
        }
        reset = "\033[0m"

        color = colors.get(event.condition.direction, "") if self.use_colors else ""
        end = reset if self.use_colors else ""

        lines = [
            f"{color}{'='*50}{end}",
            f"{color}{event.message}{end}",
            f"  Triggered at: {event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
            f"{'='*50}",
        ]
        return "\n".join(lines)


class WebhookNotificationChannel(BaseNotificationChannel):
    """
    Notification channel that POSTs a JSON payload to a URL.

    Subclasses override _build_payload for service-specific formats.
    """

    def __init__(
        self,
        name: str,
        webhook_url: str,
        directions: Optional[List[Direction]] = None,
        headers: Optional[dict] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize the webhook channel.

        Args:
            name: Channel name
            webhook_url: URL to POST events to
            directions: Directions to handle
            headers: Optional HTTP headers
            timeout: Request timeout in seconds
        """
        super().__init__(name, directions)
        self.webhook_url = webhook_url
        self.headers = headers or {"Content-Type": "application/json"}
        self.timeout = timeout

    def send(self, event: TriggerEvent) -> bool:
        """Send event to webhook."""
        try:
            import urllib.request
            import urllib.error

            payload = self._build_payload(event)
            data = json.dumps(payload).encode("utf-8")

            request = urllib.request.Request(
                self.webhook_url,
                data=data,
                headers=self.headers,
                method="POST",
            )

            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                if 200 <= response.status < 300:
                    logger.info(f"Webhook sent successfully to {self.name}")
                    return True
                else:
                    logger.warning(f"Webhook {self.name} returned status {response.status}")
                    return False

        except urllib.error.URLError as e:
            logger.error(f"Failed to send webhook {self.name}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending webhook {self.name}: {e}")
            return False

    def _build_payload(self, event: TriggerEvent) -> dict:
        """Build JSON payload for a generic webhook."""
        condition = event.condition
        return {
            "type": "price_alert",
            "alert_id": condition.id,
            "symbol": condition.symbol,
            "ticker": condition.symbol.upper(),
            "current_price": event.price_at_trigger,
            "threshold": condition.threshold,
            "direction": condition.direction.value,
            "triggered_at": event.timestamp.isoformat(),
            "message": event.message,
        }


class DiscordNotificationChannel(WebhookNotificationChannel):
    """Posts an embed to a Discord webhook."""

    def __init__(self, webhook_url: str, name: str = "discord", **kwargs):
        super().__init__(name, webhook_url, **kwargs)

    def _build_payload(self, event: TriggerEvent) -> dict:
        condition = event.condition
        return {
            "embeds": [
                {
                    "title": "Price Alert",
                    "color": 0x00FF00 if condition.direction == Direction.ABOVE else 0xFF0000,
                    "fields": [
                        {"name": "Symbol", "value": condition.symbol.upper(), "inline": True},
                        {"name": "Current Price", "value": f"${event.price_at_trigger:,.2f}", "inline": True},
                        {
                            "name": "Alert Threshold",
                            "value": f"{condition.direction.value} ${condition.threshold:,.2f}",
                            "inline": True,
                        },
                    ],
                    "timestamp": event.timestamp.isoformat(),
                    "footer": {"text": "Price Alert Bot"},
                }
            ]
        }


class SlackNotificationChannel(WebhookNotificationChannel):
    """Posts an attachment to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, name: str = "slack", **kwargs):
        super().__init__(name, webhook_url, **kwargs)

    def _build_payload(self, event: TriggerEvent) -> dict:
        condition = event.condition
        return {
            "text": "Price Alert Triggered",
            "attachments": [
                {
                    "color": "good" if condition.direction == Direction.ABOVE else "danger",
                    "fields": [
                        {"title": "Symbol", "value": condition.symbol.upper(), "short": True},
                        {"title": "Current Price", "value": f"${event.price_at_trigger:,.2f}", "short": True},
                        {
                            "title": "Alert Type",
                            "value": f"{condition.direction.value} ${condition.threshold:,.2f}",
                            "short": True,
                        },
                    ],
                    "ts": int(time.mktime(event.timestamp.timetuple())),
                }
            ],
        }


class EmailNotificationChannel(BaseNotificationChannel):
    """Sends a text + HTML email through an SMTP server."""

    def __init__(
        self,
        username: str,
        password: str,
        recipient: Optional[str] = None,
        name: str = "email",
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        directions: Optional[List[Direction]] = None,
        timeout: float = 10.0,
    ):
        super().__init__(name, directions)
        self.username = username
        self.password = password
        self.recipient = recipient or username
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.timeout = timeout

    def build_email(self, event: TriggerEvent) -> EmailMessage:
        condition = event.condition
        message = EmailMessage()
        message["Subject"] = f"Price Alert: {condition.symbol.upper()} alert triggered"
        message["From"] = self.username
        message["To"] = self.recipient
        message.set_content(event.message)
        message.add_alternative(
            f"""
            <div style="font-family: Arial, sans-serif; padding: 20px;">
                <h2>Price Alert</h2>
                <p><strong>Symbol:</strong> {condition.symbol.upper()}</p>
                <p><strong>Current Price:</strong> ${event.price_at_trigger:,.2f}</p>
                <p><strong>Alert Type:</strong> {condition.direction.value} ${condition.threshold:,.2f}</p>
                <p><strong>Triggered At:</strong> {event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}</p>
                <hr>
                <p style="color: #666;">This alert has been automatically disabled.</p>
            </div>
            """,
            subtype="html",
        )
        return message

    def send(self, event: TriggerEvent) -> bool:
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.username, self.password)
                smtp.send_message(self.build_email(event))
            logger.info(f"Email alert sent to {self.recipient}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email alert: {e}")
            return False


class CallbackNotificationChannel(BaseNotificationChannel):
    """
    Notification channel that calls a callback function.

    Useful for integrating with existing systems or for testing.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[TriggerEvent, str], None],
        directions: Optional[List[Direction]] = None,
    ):
        """
        Initialize the callback channel.

        Args:
            name: Channel name
            callback: Function to call with (event, message)
            directions: Directions to handle
        """
        super().__init__(name, directions)
        self.callback = callback

    def send(self, event: TriggerEvent) -> bool:
        try:
            self.callback(event, self.format_message(event))
            return True
        except Exception as e:
            logger.error(f"Callback failed: {e}")
            return False


def _empty_stats(channel_names: List[str]) -> dict:
    return {
        "dispatched": 0,
        "successful": 0,
        "failed": 0,
        "by_direction": {d.value: 0 for d in Direction},
        "by_channel": {name: {"sent": 0, "failed": 0} for name in channel_names},
    }


class NotificationHub:
    """
    Central hub for dispatching trigger events to multiple channels.

    Features:
    - Register multiple notification channels
    - Route events by condition direction
    - Track notification statistics
    """

    def __init__(self):
        self._channels: List[BaseNotificationChannel] = []
        self._stats = _empty_stats([])

    def register_channel(self, channel: BaseNotificationChannel) -> None:
        self._channels.append(channel)
        self._stats["by_channel"][channel.name] = {"sent": 0, "failed": 0}
        logger.info(f"Registered notification channel: {channel.name}")

    def unregister_channel(self, name: str) -> bool:
        """
        Unregister a notification channel by name.

        Returns:
            True if channel was found and removed
        """
        for i, channel in enumerate(self._channels):
            if channel.name == name:
                self._channels.pop(i)
                logger.info(f"Unregistered notification channel: {name}")
                return True
        return False

    def dispatch(self, event: TriggerEvent) -> int:
        """
        Dispatch an event to every channel handling its direction.

        Returns:
            Number of successful notifications
        """
        self._stats["dispatched"] += 1
        self._stats["by_direction"][event.condition.direction.value] += 1

        successful = 0

        for channel in list(self._channels):
            if event.condition.direction not in channel.directions:
                continue

            try:
                ok = channel.send(event)
            except Exception as e:
                logger.error(f"Error dispatching to {channel.name}: {e}")
                ok = False

            channel_stats = self._stats["by_channel"].setdefault(
                channel.name, {"sent": 0, "failed": 0}
            )
            if ok:
                successful += 1
                self._stats["successful"] += 1
                channel_stats["sent"] += 1
            else:
                self._stats["failed"] += 1
                channel_stats["failed"] += 1

        return successful

    def dispatch_batch(self, events: List[TriggerEvent]) -> int:
        return sum(self.dispatch(event) for event in events)

    def get_stats(self) -> dict:
        return self._stats.copy()

    def reset_stats(self) -> None:
        self._stats = _empty_stats([c.name for c in self._channels])

    @property
    def channels(self) -> List[BaseNotificationChannel]:
        return self._channels.copy()

    @property
    def channel_names(self) -> List[str]:
        return [c.name for c in self._channels]
