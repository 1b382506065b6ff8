"""Notification modules."""
from .telegram import TelegramProgressNotifier

__all__ = ["TelegramProgressNotifier"]
