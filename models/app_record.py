"""
App record schemas.

The ten canonical app fields, the imported row built from them, the
record shape read from Airtable, and the finalized output record.
"""

from enum import Enum
from typing import Optional
from pydantic import Field, field_validator

from models.base import CamelSchema


class AppField(str, Enum):
    """Canonical app fields, in canonical order."""
    APP_NAME = "appName"
    APP_ID = "appId"
    DEVELOPER = "developer"
    CATEGORY = "category"
    COUNTRY = "country"
    COMPANY_WEBSITE = "companyWebsite"
    COMPANY_LINKEDIN_URL = "companyLinkedinUrl"
    SENSOR_TOWER_ID = "sensorTowerId"
    GOOGLE_PLAY_ID = "googlePlayId"
    DEVELOPER_ID = "developerId"

    @property
    def label(self) -> str:
        """Column header the field is auto-mapped from."""
        return FIELD_LABELS[self]

    @property
    def attr(self) -> str:
        """Attribute name on AppSnapshot."""
        return FIELD_ATTRS[self]


FIELD_LABELS: dict[AppField, str] = {
    AppField.APP_NAME: "App Name",
    AppField.APP_ID: "App ID",
    AppField.DEVELOPER: "Developer",
    AppField.CATEGORY: "Category",
    AppField.COUNTRY: "Country",
    AppField.COMPANY_WEBSITE: "Company Website",
    AppField.COMPANY_LINKEDIN_URL: "Company LinkedIn URL",
    AppField.SENSOR_TOWER_ID: "Sensor Tower ID",
    AppField.GOOGLE_PLAY_ID: "Google Play ID",
    AppField.DEVELOPER_ID: "Developer ID",
}

FIELD_ATTRS: dict[AppField, str] = {
    AppField.APP_NAME: "app_name",
    AppField.APP_ID: "app_id",
    AppField.DEVELOPER: "developer",
    AppField.CATEGORY: "category",
    AppField.COUNTRY: "country",
    AppField.COMPANY_WEBSITE: "company_website",
    AppField.COMPANY_LINKEDIN_URL: "company_linkedin_url",
    AppField.SENSOR_TOWER_ID: "sensor_tower_id",
    AppField.GOOGLE_PLAY_ID: "google_play_id",
    AppField.DEVELOPER_ID: "developer_id",
}

CANONICAL_FIELDS: list[AppField] = list(AppField)

# Fields compared against Airtable ("any field equal" semantics)
IDENTITY_FIELDS: tuple[AppField, ...] = (
    AppField.APP_NAME,
    AppField.APP_ID,
    AppField.GOOGLE_PLAY_ID,
    AppField.SENSOR_TOWER_ID,
)

REQUIRED_FIELDS: tuple[AppField, ...] = (AppField.APP_NAME,)


class AppSnapshot(CamelSchema):
    """Values of the ten canonical fields. Absent values are empty strings."""

    app_name: str = ""
    app_id: str = ""
    developer: str = ""
    category: str = ""
    country: str = ""
    company_website: str = ""
    company_linkedin_url: str = ""
    sensor_tower_id: str = ""
    google_play_id: str = ""
    developer_id: str = ""

    @field_validator(*FIELD_ATTRS.values(), mode="before")
    @classmethod
    def blank_to_empty(cls, v):
        """Airtable hands back None for blank cells, numbers and lookup lists."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, list):
            return ", ".join(str(item) for item in v)
        return v

    def get(self, field: AppField) -> str:
        """Value of a canonical field."""
        return getattr(self, field.attr)

    def field_values(self) -> dict[AppField, str]:
        """All canonical values keyed by field, in canonical order."""
        return {field: self.get(field) for field in CANONICAL_FIELDS}

    def to_snapshot(self) -> "AppSnapshot":
        """Plain AppSnapshot copy (drops subclass-only attributes)."""
        return AppSnapshot(**{field.attr: self.get(field) for field in CANONICAL_FIELDS})


class AppImportItem(CamelSchema):
    """
    Schema every imported row must satisfy.

    Required: appName (non-empty after trimming)
    Optional: everything else
    """

    app_name: str = Field(..., min_length=1)
    app_id: Optional[str] = None
    developer: Optional[str] = None
    category: Optional[str] = None
    country: Optional[str] = None
    company_website: Optional[str] = None
    company_linkedin_url: Optional[str] = None
    sensor_tower_id: Optional[str] = None
    google_play_id: Optional[str] = None
    developer_id: Optional[str] = None


class MappedRow(CamelSchema):
    """
    One imported row seen through the current column mapping.

    original_index is the 0-based position of the row in the parsed file.
    custom_fields maps original header text to value for every column
    mapped to a custom slot.
    """

    original_index: int = Field(..., ge=0)
    snapshot: AppSnapshot = Field(default_factory=AppSnapshot)
    custom_fields: dict[str, str] = Field(default_factory=dict)

    def get(self, field: AppField) -> str:
        return self.snapshot.get(field)


class RemoteRecord(AppSnapshot):
    """App record as stored in Airtable."""

    id: str = Field(..., description="Airtable record ID (rec...)")
    campaign_ids: list[str] = Field(default_factory=list)
    sequence_name: str = ""


class FinalRecord(AppSnapshot):
    """Resolved app record handed to the notification webhook."""

    root_domain: str = ""
    custom_fields: dict[str, str] = Field(default_factory=dict)
