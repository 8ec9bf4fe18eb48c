"""Notification helpers for delivering presence alerts to external channels."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Protocol

import requests

from .models import WatchedEntity
from .watchlist import group_key

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Protocol defining the notifier contract."""

    def send(self, message: str) -> None:
        ...


@dataclass
class SlackNotifier:
    """Send messages to Slack via Incoming Webhook."""

    webhook_url: str
    timeout: int = 10

    def send(self, message: str) -> None:
        payload = {"text": message}
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()


@dataclass
class DiscordNotifier:
    """Send messages to a Discord channel webhook."""

    webhook_url: str
    timeout: int = 10

    def send(self, message: str) -> None:
        response = requests.post(
            self.webhook_url,
            json={"content": message},
            timeout=self.timeout,
        )
        response.raise_for_status()


@dataclass
class CompositeNotifier:
    """Fan-out notifier that forwards messages to multiple channels."""

    notifiers: List[Notifier]

    def send(self, message: str) -> None:
        for notifier in self.notifiers:
            try:
                notifier.send(message)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to deliver notification via %s", type(notifier).__name__)


def build_notifier_from_env() -> CompositeNotifier | None:
    """Construct a notifier from environment configuration."""
    notifiers: list[Notifier] = []

    slack_webhook = (os.getenv("SLACK_WEBHOOK") or "").strip()
    if slack_webhook:
        notifiers.append(SlackNotifier(webhook_url=slack_webhook))

    discord_webhook = (os.getenv("DISCORD_WEBHOOK_URL") or "").strip()
    if discord_webhook:
        notifiers.append(DiscordNotifier(webhook_url=discord_webhook))

    if not notifiers:
        return None
    return CompositeNotifier(notifiers=notifiers)


def format_status_change(entity: WatchedEntity, is_online: bool) -> str:
    if is_online:
        return f":green_circle: Player online\n{entity.display_name} is online"
    return f":red_circle: Player offline\n{entity.display_name} is offline"


def format_group_offline(group_name: str) -> str:
    return f":zzz: Group offline\nAll players in group {group_name} are offline"


def should_notify(entity: WatchedEntity, group_settings: Mapping[str, bool]) -> bool:
    """Status alerts need both the player's and the group's switch enabled."""
    return entity.notifications_active and group_settings.get(group_key(entity.group), True)


@dataclass
class AlertDispatcher:
    """Fire-and-forget alert sink; delivery failures are logged, never retried."""

    notifier: Notifier | None

    def notify_status_change(self, entity: WatchedEntity, is_online: bool) -> bool:
        return self._deliver(format_status_change(entity, is_online))

    def notify_group_all_offline(self, group_name: str) -> bool:
        return self._deliver(format_group_offline(group_name))

    def _deliver(self, message: str) -> bool:
        if self.notifier is None:
            logger.info("Alert (no notifier configured): %s", message.replace("\n", " | "))
            return False
        try:
            self.notifier.send(message)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to deliver alert")
            return False
        return True


__all__ = [
    "AlertDispatcher",
    "CompositeNotifier",
    "DiscordNotifier",
    "Notifier",
    "SlackNotifier",
    "build_notifier_from_env",
    "format_group_offline",
    "format_status_change",
    "should_notify",
]
