"""
Registration Schemas

Request/response models for the tenant signup endpoint.
"""
from typing import List
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator


class RegisterRequest(BaseModel):
    """
    Business signup form.

    Passwords are taken as typed; every other field is trimmed. The
    password policy depends on settings and is checked by the registration
    service.
    """
    business_name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=20)
    password: str
    password_confirmation: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "business_name": "Acme Corp",
                "username": "jdoe",
                "email": "owner@acmecorp.co.ke",
                "phone": "+254700000000",
                "password": "securepassword123",
                "password_confirmation": "securepassword123"
            }
        }
    }

    @field_validator("business_name", "username", "email", "phone", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password_confirmation")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        # password is missing from info.data when it already failed
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("The password confirmation does not match.")
        return value


class PasswordPolicy(BaseModel):
    min_length: int
    require_mixed_case: bool
    require_numbers: bool
    require_symbols: bool


class RegistrationForm(BaseModel):
    """Describes the signup form for the frontend."""
    fields: List[str]
    password_policy: PasswordPolicy
    base_domain: str
