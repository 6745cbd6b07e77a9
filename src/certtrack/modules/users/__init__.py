"""
Users module - certificate holders.
"""

from certtrack.modules.users.models import User
from certtrack.modules.users.repository import UserRepository

__all__ = ["User", "UserRepository"]
