# maestro_themes/schemas.py
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PackageRecordView(BaseModel):
    id: str
    name: str
    title: str
    status: Literal["active", "inactive"]
    version: str
    update: bool
    update_version: Optional[str] = None
    auto_updates: bool = False


class ThemesResponse(BaseModel):
    themes: list[PackageRecordView] = Field(default_factory=list)
    auto_update_global: bool = False
    last_checked: Optional[int] = None


class UpgradeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    slug: str = Field(..., min_length=1)


class UpgradeResponse(BaseModel):
    slug: str
    version: Optional[str] = None
    success: bool


class ErrorResponse(BaseModel):
    error: str
    code: str
