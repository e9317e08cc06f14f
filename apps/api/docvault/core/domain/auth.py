from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from docvault.core.domain.user import User


@dataclass
class RefreshToken:
    token_id: str
    user_id: str
    token_hash: str
    is_revoked: bool
    expires_at: datetime
    created_at: datetime
    user: Optional[User] = None
