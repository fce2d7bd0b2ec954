"""
OTP Record Storage
==================
Pluggable persistence for code attempt records.
"""

from .base import BaseOTPStore
from .memory import InMemoryOTPStore
from .database import Base, OTPRecordRow, SQLAlchemyOTPStore, create_async_engine

__all__ = [
    # Contract
    "BaseOTPStore",
    # Stores
    "InMemoryOTPStore",
    "SQLAlchemyOTPStore",
    # SQLAlchemy
    "Base",
    "OTPRecordRow",
    "create_async_engine",
]
