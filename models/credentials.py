"""
Notification credential model.

Represents the secrets a merchant account's notifications are
authenticated with.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthorizationCredentials:
    """
    Credentials for one provider merchant account.

    Attributes:
        merchant_account: Provider merchant account code ('' matches any account)
        username: HTTP Basic username the provider sends
        password: HTTP Basic password the provider sends
        hmac_key: Hex-encoded HMAC key used to sign each notification item
    """

    merchant_account: str = ''
    username: Optional[str] = None
    password: Optional[str] = None
    hmac_key: Optional[str] = None

    def __post_init__(self):
        """Validate credential configuration."""
        if self.hmac_key:
            try:
                bytes.fromhex(self.hmac_key)
            except ValueError:
                raise ValueError("HMAC key must be a hex string") from None

    @property
    def has_basic_auth(self) -> bool:
        return bool(self.username and self.password)

    @property
    def has_hmac(self) -> bool:
        return bool(self.hmac_key)

    @property
    def is_configured(self) -> bool:
        return self.has_basic_auth or self.has_hmac

    def matches_account(self, merchant_account: str) -> bool:
        return not self.merchant_account or self.merchant_account == merchant_account

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthorizationCredentials':
        """
        Create credentials from a dictionary (e.g., database row).

        Args:
            data: Dictionary with credential data

        Returns:
            AuthorizationCredentials instance
        """
        return cls(
            merchant_account=data.get('merchant_account') or '',
            username=data.get('username') or None,
            password=data.get('password') or None,
            hmac_key=data.get('hmac_key') or None
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary with secrets masked.

        Returns:
            Dictionary representation without sensitive data
        """
        return {
            'merchant_account': self.merchant_account,
            'username': self.username,
            'password': '***' if self.password else None,
            'hmac_key': '***' if self.hmac_key else None
        }

    def __repr__(self) -> str:
        return (
            f"AuthorizationCredentials(account={self.merchant_account or '*'}, "
            f"basic_auth={self.has_basic_auth}, hmac={self.has_hmac})"
        )
