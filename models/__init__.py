"""Data models for the Payment Notification service."""

from .credentials import AuthorizationCredentials
from .notification import (
    Amount,
    BatchResult,
    EventCode,
    NotificationItem,
    NotificationStatus,
    ProcessingResult,
    RawNotificationItem,
    StoredNotification,
)
from .order import OrderPaymentState, PaymentStatus, PaymentTransition

__all__ = [
    'Amount',
    'AuthorizationCredentials',
    'BatchResult',
    'EventCode',
    'NotificationItem',
    'NotificationStatus',
    'OrderPaymentState',
    'PaymentStatus',
    'PaymentTransition',
    'ProcessingResult',
    'RawNotificationItem',
    'StoredNotification',
]
