"""
Pydantic models for the authenticated user
"""

from pydantic import BaseModel
from typing import Optional


class UserPublic(BaseModel):
    """Minimal user info from JWT token"""
    user_id: str
    community_id: str
    is_admin: bool = False
    name: Optional[str] = None

    model_config = {
        "from_attributes": True,
        "populate_by_name": True
    }
