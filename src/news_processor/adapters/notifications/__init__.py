"""Notification adapters."""

from news_processor.adapters.notifications.slack_notifier import SlackNotifier

__all__ = ["SlackNotifier"]
