"""Request/response models validated at the HTTP boundary."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from tokengate.domain.tokens import ActionKind


class ActionRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    action: ActionKind

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("Email invalido")
        return value


class ActionCompletion(BaseModel):
    token: str = Field(min_length=1, max_length=512)
    action: ActionKind
    password: Optional[str] = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def password_for_reset(self) -> "ActionCompletion":
        if self.action is ActionKind.PASSWORD_RESET:
            if not self.password or len(self.password) < 8:
                raise ValueError("Senha muito curta. Use no minimo 8 caracteres")
        return self

    def payload(self) -> dict:
        return {"password": self.password} if self.password is not None else {}


class ActionResponse(BaseModel):
    ok: bool
    message: str


class TokenCheckResponse(BaseModel):
    valid: bool


class HealthResponse(BaseModel):
    ok: bool
    database: bool
    notifier: bool
