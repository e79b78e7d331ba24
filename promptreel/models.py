from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class User:
    id: str
    email: str = ""
    name: Optional[str] = None
    is_subscriber: bool = False
    created_at: Optional[str] = None

    def with_profile(self, profile: Dict[str, Any]) -> "User":
        return replace(
            self,
            name=profile.get("name") or self.name,
            is_subscriber=bool(profile.get("is_subscriber", False)),
            created_at=profile.get("created_at") or self.created_at,
        )

    def public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "is_subscriber": self.is_subscriber,
            "created_at": self.created_at,
        }


def extract_user_name(user: Optional[User]) -> str:
    if user is not None and user.name:
        return user.name
    if user is not None and user.email:
        return user.email.split("@")[0] or "User"
    return "User"


class SignUpReq(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str
    phone: Optional[str] = None

class SignInReq(BaseModel):
    email: str
    password: str

class SignOutReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    access_token: str = Field(validation_alias=AliasChoices("access_token", "AccessToken"))

class PasswordResetReq(BaseModel):
    email: str

class PasswordResetConfirmReq(BaseModel):
    email: str
    confirmation_code: str = Field(validation_alias=AliasChoices("confirmation_code", "code"))
    new_password: str = Field(min_length=6)

class ProfilePatchReq(BaseModel):
    name: str

class VideoCreateReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    youtube_url: str = Field(validation_alias=AliasChoices("youtube_url", "youtubeUrl"))
    prompt: str

class CommentCreateReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    text: str
    parent_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("parent_id", "parentId"))


class CommentOut(BaseModel):
    id: str
    text: str
    user_id: str
    user_name: str
    created_at: Optional[str] = None
    parent_id: Optional[str] = None
    replies: List["CommentOut"] = Field(default_factory=list)

CommentOut.model_rebuild()

class VideoOut(BaseModel):
    id: str
    user_id: str
    user_name: str
    youtube_url: str
    embed_url: Optional[str] = None
    prompt: str
    prompt_preview: str
    created_at: Optional[str] = None
