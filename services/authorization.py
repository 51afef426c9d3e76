"""
Notification authorization.

Checks HTTP Basic credentials and per-item HMAC signatures against the
credentials configured for each item's merchant account.
"""

import base64
import binascii
import hashlib
import hmac
import logging
from typing import Dict, Optional, Sequence

from aiohttp import BasicAuth

from models.credentials import AuthorizationCredentials
from models.notification import RawNotificationItem
from .credential_store import CredentialStore
from .exceptions import AuthorizationError

logger = logging.getLogger(__name__)


def signing_string(item: RawNotificationItem) -> str:
    """
    Build the string the provider signs for a notification item.

    Format:
        pspReference:originalReference:merchantAccountCode:merchantReference:value:currency:eventCode:success
    """
    payload = item.payload
    amount = payload.get('amount') or {}
    success = payload.get('success', '')
    if isinstance(success, bool):
        success = 'true' if success else 'false'

    parts = [
        payload.get('pspReference', ''),
        payload.get('originalReference', ''),
        payload.get('merchantAccountCode', ''),
        payload.get('merchantReference', ''),
        amount.get('value', ''),
        amount.get('currency', ''),
        payload.get('eventCode', ''),
        success,
    ]
    return ':'.join('' if p is None else str(p) for p in parts)


def calculate_signature(item: RawNotificationItem, hmac_key: str) -> str:
    """
    Calculate the HMAC signature of a notification item.

    Args:
        item: Raw notification item
        hmac_key: Hex-encoded HMAC key

    Returns:
        Base64-encoded HMAC-SHA256 signature
    """
    digest = hmac.new(
        bytes.fromhex(hmac_key),
        signing_string(item).encode('utf-8'),
        hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode('ascii')


def verify_signature(item: RawNotificationItem, hmac_key: str) -> bool:
    """
    Verify the HMAC signature embedded in a notification item.

    Returns:
        True if the signature is present and valid
    """
    signature = item.hmac_signature
    if not signature:
        return False
    expected = calculate_signature(item, hmac_key)
    return hmac.compare_digest(expected.encode('ascii'), str(signature).encode('utf-8'))


class AuthorizationValidator:
    """
    Validates that every item of a batch is authentic.

    The check is side-effect free and must run before anything is stored.
    """

    def __init__(self, credential_store: CredentialStore):
        self.credential_store = credential_store

    async def validate(
        self,
        items: Sequence[RawNotificationItem],
        authorization_header: Optional[str] = None
    ) -> None:
        """
        Validate a batch of notification items.

        Args:
            items: Parsed notification items
            authorization_header: Raw ``Authorization`` request header

        Raises:
            AuthorizationError: If any item fails authentication
        """
        if not items:
            return

        basic_auth: Optional[BasicAuth] = None
        header_decoded = False
        credentials_by_account: Dict[str, Optional[AuthorizationCredentials]] = {}

        for item in items:
            account = item.merchant_account_code
            if account not in credentials_by_account:
                credentials = await self.credential_store.fetch(account)
                credentials_by_account[account] = credentials
                # HMAC-only accounts ignore the header entirely
                if credentials is not None and credentials.has_basic_auth:
                    if not header_decoded:
                        basic_auth = self._decode_basic_auth(authorization_header)
                        header_decoded = True
                    self._check_basic_auth(account, credentials, basic_auth)

            credentials = credentials_by_account[account]
            if credentials is None or not credentials.is_configured:
                logger.warning(f"Rejected notification for unknown merchant account '{account}'")
                raise AuthorizationError.forbidden(
                    f"No notification credentials configured for merchant account '{account}'"
                )

            if credentials.has_hmac and not verify_signature(item, credentials.hmac_key):
                logger.warning(
                    f"Invalid HMAC signature for {item.event_code} {item.psp_reference} "
                    f"(account '{account}')"
                )
                raise AuthorizationError("Invalid HMAC signature")

    def _check_basic_auth(
        self,
        account: str,
        credentials: AuthorizationCredentials,
        basic_auth: Optional[BasicAuth]
    ) -> None:
        if basic_auth is None:
            logger.warning(f"Missing basic auth credentials for account '{account}'")
            raise AuthorizationError("Missing basic auth credentials")

        valid_login = hmac.compare_digest(
            basic_auth.login.encode('utf-8'), credentials.username.encode('utf-8')
        )
        valid_password = hmac.compare_digest(
            basic_auth.password.encode('utf-8'), credentials.password.encode('utf-8')
        )
        if not (valid_login and valid_password):
            logger.warning(f"Invalid basic auth credentials for account '{account}'")
            raise AuthorizationError("Invalid basic auth credentials")

    @staticmethod
    def _decode_basic_auth(header: Optional[str]) -> Optional[BasicAuth]:
        if not header:
            return None
        try:
            return BasicAuth.decode(header)
        except (ValueError, binascii.Error):
            raise AuthorizationError("Malformed Authorization header")
