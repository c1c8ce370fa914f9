"""
User model for authentication
"""

from typing import List, Optional
from pydantic import BaseModel


class User(BaseModel):
    """Authenticated user taken from the JWT payload"""

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    roles: List[str] = []

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role"""
        return role.lower() in [r.lower() for r in self.roles]
