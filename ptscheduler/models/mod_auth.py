from enum import Enum
from pydantic import BaseModel
from typing import Optional

class UserRole(str, Enum):
    MEMBER = "MEMBER"
    TRAINER = "TRAINER"
    MANAGER = "MANAGER"

class AuthUser(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.MEMBER

class TokenData(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.MEMBER
    exp: Optional[float] = None
