"""Services module for the Payment Notification service."""

from .authorization import AuthorizationValidator
from .credential_store import CredentialStore
from .dispatcher import NotificationDispatcher, ProcessorRegistry
from .hooks import IgnoreEventCodesHook, NotificationHooks
from .notification_handler import NotificationHandler
from .notification_repository import NotificationRepository
from .order_client import OrderServiceClient
from .parser import NotificationParser
from .processors import default_processors

__all__ = [
    'AuthorizationValidator',
    'CredentialStore',
    'IgnoreEventCodesHook',
    'NotificationDispatcher',
    'NotificationHandler',
    'NotificationHooks',
    'NotificationParser',
    'NotificationRepository',
    'OrderServiceClient',
    'ProcessorRegistry',
    'default_processors'
]
