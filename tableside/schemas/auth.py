from pydantic import BaseModel, Field, field_validator

from tableside.schemas.common import UtcDatetime


class PhoneCheckRequest(BaseModel):
    phone_number: str = Field(min_length=3, max_length=32)

    @field_validator("phone_number")
    @classmethod
    def _phone_strip(cls, value: str) -> str:
        return value.strip()


class PhoneCheckResponse(BaseModel):
    exists: bool
    name: str | None = None


class LoginRequest(BaseModel):
    phone_number: str = Field(min_length=3, max_length=32)
    name: str | None = Field(default=None, max_length=80)
    table_number: str | None = Field(default=None, max_length=32)

    @field_validator("phone_number")
    @classmethod
    def _login_phone_strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class UserPublic(BaseModel):
    phone_number: str
    name: str
    photo_url: str | None = None
    created_at: UtcDatetime | None = None
    last_login: UtcDatetime | None = None

    model_config = {"from_attributes": True}


class SessionUser(BaseModel):
    """The diner identity a session is bound to."""

    phone_number: str
    name: str
    photo_url: str | None = None
    table_number: str | None = None
