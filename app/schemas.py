"""Pydantic schemas for the HTTP API layer and the persisted records."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.records import DistributionOutcome


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


class ProjectStatus(str, Enum):
    """Project lifecycle states exposed via the API."""

    active = "active"
    completed = "completed"
    expired = "expired"


class NoiseLevel(str, Enum):
    quiet = "quiet"
    moderate = "moderate"
    noisy = "noisy"
    loud = "loud"


class NoisePayload(BaseModel):
    """Decibel summary of a background noise recording."""

    model_config = ConfigDict(frozen=True)

    average_db: float
    min_db: float
    max_db: float
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    level: NoiseLevel


class WifiPayload(BaseModel):
    """Result of a WiFi speed test."""

    model_config = ConfigDict(frozen=True)

    download_mbps: float = Field(..., ge=0)
    upload_mbps: float = Field(..., ge=0)
    latency_ms: Optional[float] = Field(default=None, ge=0)


class LightPayload(BaseModel):
    """Ambient light reading."""

    model_config = ConfigDict(frozen=True)

    lux: float = Field(..., ge=0)


class _MeasurementItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    collected_at: datetime

    @field_validator("collected_at")
    @classmethod
    def _collected_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class NoiseItem(_MeasurementItem):
    kind: Literal["noise"] = "noise"
    payload: NoisePayload


class WifiItem(_MeasurementItem):
    kind: Literal["wifi"] = "wifi"
    payload: WifiPayload


class LightItem(_MeasurementItem):
    kind: Literal["light"] = "light"
    payload: LightPayload


DataItem = Annotated[Union[NoiseItem, WifiItem, LightItem], Field(discriminator="kind")]


class SubmissionCreate(BaseModel):
    """Request body for submitting collected measurements to a project."""

    contributor_address: Optional[str] = Field(
        default=None,
        description="Wallet address of the contributor; defaults to the requester identity.",
    )
    data_items: List[DataItem] = Field(default_factory=list)

    @field_validator("contributor_address")
    @classmethod
    def _normalize_address(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class Submission(BaseModel):
    """A batch of measurements recorded against a project. Never mutated."""

    model_config = ConfigDict(frozen=True)

    submission_id: str
    project_id: str
    submitted_at: datetime
    contributor_address: Optional[str] = None
    data_items: List[DataItem] = Field(default_factory=list)

    @field_validator("contributor_address")
    @classmethod
    def _normalize_address(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("submitted_at")
    @classmethod
    def _submitted_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DataToCollect(BaseModel):
    background_noise: bool = True
    wifi_speed: bool = False
    light_intensity: bool = False


class ProjectCreate(BaseModel):
    """Request body for opening a new data-collection project."""

    title: str = Field(..., min_length=1)
    description: str = ""
    location: Optional[Location] = None
    address: Optional[str] = None
    range_km: float = Field(default=1.0, gt=0, description="Collection radius in kilometres.")
    end_date: date
    reward_total: Decimal = Field(..., ge=0, description="Total reward pool for contributors.")
    data_to_collect: DataToCollect = Field(default_factory=DataToCollect)
    created_by: Optional[str] = Field(
        default=None,
        description="Owner address; defaults to the requester identity.",
    )

    @field_validator("created_by")
    @classmethod
    def _normalize_owner(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class Project(BaseModel):
    """A bounded data-collection campaign with a reward pool."""

    id: str
    title: str
    description: str = ""
    location: Optional[Location] = None
    address: Optional[str] = None
    range_km: float = 1.0
    end_date: date
    reward_total: Decimal = Field(..., ge=0)
    data_to_collect: DataToCollect = Field(default_factory=DataToCollect)
    created_by: str
    created_at: datetime
    status: ProjectStatus = ProjectStatus.active
    completed_at: Optional[datetime] = None


class DistributionEntry(BaseModel):
    contributor_address: str
    units: int = Field(..., ge=0)
    amount: Decimal = Field(..., ge=0)


class Distribution(BaseModel):
    """Reward shares computed when a project is completed."""

    project_id: str
    outcome: DistributionOutcome
    reward_total: Decimal
    total_units: int = Field(..., ge=0)
    entries: List[DistributionEntry] = Field(default_factory=list)
    created_at: datetime

    def total_amount(self) -> Decimal:
        return sum((entry.amount for entry in self.entries), Decimal(0))

    def amount_for(self, address: str) -> Optional[Decimal]:
        for entry in self.entries:
            if entry.contributor_address == address:
                return entry.amount
        return None


class ContributionStatus(str, Enum):
    paid = "paid"
    unpaid = "unpaid"
    pending = "pending"


class ContributionRecord(BaseModel):
    """One project a contributor has submitted data to."""

    project_id: str
    title: str
    project_status: ProjectStatus
    units: int = Field(..., ge=0)
    last_submitted_at: datetime
    status: ContributionStatus
    amount: Optional[Decimal] = Field(
        default=None,
        description="Paid amount, or the current estimate while the project is active.",
    )


class ContributorHistory(BaseModel):
    address: str
    total_earned: Decimal = Decimal(0)
    contributions: List[ContributionRecord] = Field(default_factory=list)
