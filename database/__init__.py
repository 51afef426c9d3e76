"""Database module for the Payment Notification service."""

from .db import Database

__all__ = ['Database']
