from datetime import datetime

from pydantic import BaseModel, EmailStr

from uni_health.models.user import Role


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    role: Role
