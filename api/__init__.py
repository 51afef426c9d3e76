"""API module for the Payment Notification service."""

from .notification_api import create_app, NotificationAPI
from .responses import ResponseBuilder

__all__ = ['create_app', 'NotificationAPI', 'ResponseBuilder']
