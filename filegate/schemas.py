from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class RenameRequest(BaseModel):
    old_path: str = Field(validation_alias=AliasChoices('old_path', 'oldPath'))
    new_name: str = Field(min_length=1, max_length=255, validation_alias=AliasChoices('new_name', 'newName'))


class MoveRequest(BaseModel):
    source: str
    destination: str = ''


class MkdirRequest(BaseModel):
    path: str = Field(min_length=1)


class ApiResponse(BaseModel):
    ok: bool
    message: str
    data: Optional[Any] = None
