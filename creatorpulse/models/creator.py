"""Creator and creator URL models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from creatorpulse.models.content import Platform


class CreatorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ValidationStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    PENDING = "pending"


class CreatorURL(BaseModel):
    """One platform URL belonging to a creator."""

    id: Optional[str] = None
    creator_id: str
    platform: Platform
    url: str
    normalized_url: str
    validation_status: ValidationStatus = ValidationStatus.PENDING


class Creator(BaseModel):
    """An external creator whose content is ingested."""

    id: str
    display_name: str
    status: CreatorStatus = CreatorStatus.ACTIVE
    urls: list[CreatorURL] = Field(default_factory=list)
    last_fetched_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def _one_url_per_platform(self) -> "Creator":
        seen: set[Platform] = set()
        for creator_url in self.urls:
            if creator_url.platform in seen:
                raise ValueError(
                    f"Creator {self.id} has more than one {creator_url.platform.value} URL"
                )
            seen.add(creator_url.platform)
        return self

    @property
    def is_active(self) -> bool:
        return self.status == CreatorStatus.ACTIVE

    def url_for(self, platform: Platform) -> Optional[CreatorURL]:
        for creator_url in self.urls:
            if creator_url.platform == platform:
                return creator_url
        return None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Creator":
        data = dict(row)
        data["urls"] = data.pop("creator_urls", None) or data.get("urls") or []
        return cls.model_validate(data)
