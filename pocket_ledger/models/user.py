"""User account models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pocket_ledger.models.transaction import utc_now


class User(BaseModel):
    """Public view of an account. Never carries the password hash."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, max_length=254)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("Email address is not valid")
        return v.lower()


class StoredUser(User):
    """User row as kept by the identity store."""

    password_hash: str = Field(..., min_length=1)

    def public(self) -> User:
        return User(id=self.id, email=self.email, created_at=self.created_at)


class AuthResult(BaseModel):
    """Returned by sign-up and log-in."""
    model_config = ConfigDict(frozen=True)

    user: User
    token: str
