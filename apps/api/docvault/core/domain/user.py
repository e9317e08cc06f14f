from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


@dataclass
class User:
    user_id: str
    name: str
    email: str
    password_hash: str
    role: str
    is_active: bool = True
    created_at: Optional[datetime] = None
