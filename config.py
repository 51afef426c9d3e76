"""
Configuration module for the Payment Notification service.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    url: str


@dataclass
class APIConfig:
    """API server configuration."""
    host: str
    port: int
    notification_path: str = '/notification/adyen'


@dataclass
class NotificationConfig:
    """Incoming notification handling configuration."""
    merchant_account: str
    username: str
    password: str
    hmac_key: str
    concurrency: int = 4
    claim_timeout: int = 300  # Seconds before a RECEIVED claim may be taken over
    ignored_events: List[str] = field(default_factory=list)


@dataclass
class OrderServiceConfig:
    """Order subsystem client configuration."""
    url: str
    timeout: int
    api_key: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    file: Optional[str]


@dataclass
class ServiceConfig:
    """Service-level configuration."""
    name: str
    shutdown_timeout: int


def _split_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(',') if v.strip()]


class Config:
    """
    Main configuration class that aggregates all config sections.

    Usage:
        from config import config

        print(config.database.url)
        print(config.notification.hmac_key)
    """

    def __init__(self):
        self._load_config()

    def _load_config(self):
        """Load all configuration from environment variables."""

        # Database configuration
        self.database = DatabaseConfig(
            url=os.getenv('DATABASE_URL', 'sqlite:///./payment_notifications.db')
        )

        # API configuration
        self.api = APIConfig(
            host=os.getenv('API_HOST', '0.0.0.0'),
            port=int(os.getenv('API_PORT', '8000')),
            notification_path=os.getenv('NOTIFICATION_PATH', '/notification/adyen')
        )

        # Notification configuration
        self.notification = NotificationConfig(
            merchant_account=os.getenv('NOTIFICATION_MERCHANT_ACCOUNT', ''),
            username=os.getenv('NOTIFICATION_USERNAME', ''),
            password=os.getenv('NOTIFICATION_PASSWORD', ''),
            hmac_key=os.getenv('NOTIFICATION_HMAC_KEY', ''),
            concurrency=int(os.getenv('NOTIFICATION_CONCURRENCY', '4')),
            claim_timeout=int(os.getenv('NOTIFICATION_CLAIM_TIMEOUT', '300')),
            ignored_events=_split_list(os.getenv('NOTIFICATION_IGNORED_EVENTS', ''))
        )

        # Order service configuration
        self.order_service = OrderServiceConfig(
            url=os.getenv('ORDER_SERVICE_URL', ''),
            timeout=int(os.getenv('ORDER_SERVICE_TIMEOUT', '10')),
            api_key=os.getenv('ORDER_SERVICE_API_KEY')
        )

        # Logging configuration
        self.logging = LoggingConfig(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            file=os.getenv('LOG_FILE')
        )

        # Service configuration
        self.service = ServiceConfig(
            name=os.getenv('SERVICE_NAME', 'PaymentNotifications'),
            shutdown_timeout=int(os.getenv('SHUTDOWN_TIMEOUT', '30'))
        )

    def validate(self) -> List[str]:
        """
        Validate required configuration values.

        Returns:
            List of validation error messages (empty if all valid)
        """
        errors = []

        if not self.database.url:
            errors.append("DATABASE_URL is required")

        if not self.order_service.url:
            errors.append("ORDER_SERVICE_URL is required")

        if self.notification.concurrency < 1:
            errors.append("NOTIFICATION_CONCURRENCY must be at least 1")

        if self.notification.hmac_key:
            try:
                bytes.fromhex(self.notification.hmac_key)
            except ValueError:
                errors.append("NOTIFICATION_HMAC_KEY must be a hex string")

        if bool(self.notification.username) != bool(self.notification.password):
            errors.append("NOTIFICATION_USERNAME and NOTIFICATION_PASSWORD must be set together")

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
config = Config()
