"""
Pydantic schemas for the newsdesk HTTP surface.
"""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from newsdesk.db import Item


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str


class HealthResponse(BaseModel):
    ok: Literal[True] = True
    status: str = "up"


class LoginRequest(BaseModel):
    username: str = Field(..., max_length=256)
    password: str = Field(..., max_length=1024)


class LoginResponse(BaseModel):
    ok: Literal[True] = True
    token: str


class UserInfo(BaseModel):
    username: str


class MeResponse(BaseModel):
    ok: Literal[True] = True
    user: UserInfo


class ItemPayload(BaseModel):
    id: str
    title: str
    body: str = ""
    source: str = ""
    imageUrl: str = ""
    createdAt: str

    @classmethod
    def from_item(cls, item: Item) -> "ItemPayload":
        return cls(**item.as_dict())


class CreateItemRequest(BaseModel):
    """Accepts both the "post" (title/body) and "news" (text) field names."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(
        default="", max_length=1000, validation_alias=AliasChoices("title", "text")
    )
    body: str = Field(default="", max_length=20000)
    source: str = Field(
        default="", max_length=2048, validation_alias=AliasChoices("source", "sourceUrl")
    )
    imageUrl: str = Field(default="", max_length=2048)


class CreateItemResponse(BaseModel):
    ok: Literal[True] = True
    status: Literal["created"] = "created"
    item: ItemPayload


class ListItemsResponse(BaseModel):
    ok: Literal[True] = True
    items: list[ItemPayload]


class DeleteItemResponse(BaseModel):
    ok: Literal[True] = True
    deleted: int


class UploadResponse(BaseModel):
    ok: Literal[True] = True
    url: str
