"""
Notification credential lookup.

Credentials come from the merchant_credentials table, falling back to the
credentials configured in the environment.
"""

import logging
from typing import Optional

from config import config
from database.db import Database
from models.credentials import AuthorizationCredentials

logger = logging.getLogger(__name__)


def default_credentials() -> Optional[AuthorizationCredentials]:
    """
    Build credentials from NOTIFICATION_* configuration.

    Returns:
        Credentials, or None if nothing is configured
    """
    settings = config.notification
    credentials = AuthorizationCredentials(
        merchant_account=settings.merchant_account,
        username=settings.username or None,
        password=settings.password or None,
        hmac_key=settings.hmac_key or None
    )
    return credentials if credentials.is_configured else None


class CredentialStore:
    """Read-only source of AuthorizationCredentials keyed by merchant account."""

    def __init__(
        self,
        db: Optional[Database] = None,
        default: Optional[AuthorizationCredentials] = None
    ):
        """
        Initialize the credential store.

        Args:
            db: Database holding per-account credentials (optional)
            default: Credentials used when the account has no row
        """
        self.db = db
        self.default = default

    async def fetch(self, merchant_account: str) -> Optional[AuthorizationCredentials]:
        """
        Get credentials for a merchant account.

        Args:
            merchant_account: Provider merchant account code

        Returns:
            Credentials, or None if the account is unknown
        """
        if self.db is not None and merchant_account:
            row = await self.db.get_merchant_credentials(merchant_account)
            if row:
                return AuthorizationCredentials.from_dict(row)

        if self.default is not None and self.default.matches_account(merchant_account):
            return self.default

        logger.debug(f"No notification credentials for merchant account '{merchant_account}'")
        return None
