"""Notification delivery: channel abstraction and dispatcher."""

from infobot.notification.channel import DiscordWebhookChannel, NotificationChannel
from infobot.notification.dispatcher import NotificationDispatcher

__all__ = ["NotificationChannel", "DiscordWebhookChannel", "NotificationDispatcher"]
