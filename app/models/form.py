import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import ConfigDict, Field, field_serializer, field_validator, model_validator
from app.core.time_utils import to_iso, utc_now
from app.models.base import CamelModel


class FormStatus(str, enum.Enum):
    """Form status enumeration."""
    INTERNAL = "Internal"
    PUBLIC = "Public"
    ARCHIVED = "Archived"


# Status values written by earlier dashboard releases
LEGACY_STATUS_MAP = {
    "published": FormStatus.PUBLIC,
    "draft": FormStatus.INTERNAL,
    "internal": FormStatus.INTERNAL,
    "public": FormStatus.PUBLIC,
    "archived": FormStatus.ARCHIVED,
}


def normalize_status(value: Any) -> FormStatus:
    if isinstance(value, FormStatus):
        return value
    if not value:
        return FormStatus.INTERNAL
    mapped = LEGACY_STATUS_MAP.get(str(value).strip().lower())
    if mapped is None:
        raise ValueError(f"Unknown form status: {value}")
    return mapped


class FormSettings(CamelModel):
    """Advisory per-form feature flags."""

    model_config = ConfigDict(extra="allow")

    enable_webhook: bool = False
    enable_file_uploads: bool = True
    enable_csv_export: bool = Field(default=True, alias="enableCSVExport")


class FormConfig(CamelModel):
    """
    One persisted form: identity, visibility state and the opaque
    survey definition. Stored as `{formsDir}/{id}.json`.

    Keys this model does not know about are kept and written back unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    description: str = ""
    url_slug: str
    webhook_url: Optional[str] = None
    status: FormStatus = FormStatus.INTERNAL
    is_public: bool = False
    tags: List[str] = Field(default_factory=list)
    form_definition: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    generated_by: Optional[str] = None
    settings: FormSettings = Field(default_factory=FormSettings)

    @model_validator(mode="before")
    @classmethod
    def fill_legacy_fields(cls, data: Any) -> Any:
        """Older form files may lack urlSlug/isPublic or carry legacy status names."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["status"] = normalize_status(data.get("status"))
        if not (data.get("urlSlug") or data.get("url_slug")):
            data["urlSlug"] = data.get("id")
        if "isPublic" not in data and "is_public" not in data:
            data["isPublic"] = data["status"] == FormStatus.PUBLIC
        if data.get("tags") is None:
            data["tags"] = []
        return data

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer("created_at", "updated_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso(value) if value else None

    @property
    def is_servable(self) -> bool:
        """Publicly servable: flagged public and not archived."""
        return self.is_public and self.status != FormStatus.ARCHIVED

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict in the on-disk (camelCase) layout."""
        return self.model_dump(mode="json", by_alias=True)
