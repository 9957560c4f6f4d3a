"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from foodfriends.config import get_settings


class RegistrationInput(BaseModel):
    name: str
    email: EmailStr
    password: str
    confirm_password: str
    avatar_url: str = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def name_long_enough(cls, v):
        v = v.strip()
        if len(v) < get_settings().min_name_length:
            raise ValueError(f"Name must be at least {get_settings().min_name_length} characters long")
        return v

    @field_validator("password")
    @classmethod
    def password_long_enough(cls, v):
        if len(v) < get_settings().min_password_length:
            raise ValueError(f"Password must be at least {get_settings().min_password_length} characters long")
        return v

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class PostCreateInput(BaseModel):
    image_url: str = Field(min_length=1)
    image_id: str = ""
    description: str

    @field_validator("description")
    @classmethod
    def description_present(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Please write a description.")
        limit = get_settings().description_max_length
        if len(v) > limit:
            raise ValueError(f"description must be at most {limit} characters")
        return v


class CommentInput(BaseModel):
    post_id: str = Field(min_length=1)
    text: str

    @field_validator("text")
    @classmethod
    def text_present(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("comment must not be blank")
        return v


class MessageInput(BaseModel):
    chat_id: str = Field(min_length=1)
    text: str

    @field_validator("text")
    @classmethod
    def text_present(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("message must not be blank")
        return v
