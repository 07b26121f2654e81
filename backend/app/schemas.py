import re
from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.app.core.constants import (
    WEEKDAY_NAMES,
    IssueStatus,
    IssueType,
    OrderStatus,
)

Weekday = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

_ZIP_RE = re.compile(r"^\d{5}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


# --- Delivery zones ---
class DeliveryTimeWindow(BaseModel):
    day: Weekday
    startTime: str
    endTime: str

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError("Invalid time format (HH:MM)")
        return v


class DeliveryZoneBase(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    zipCodes: Optional[List[str]] = None
    cities: Optional[List[str]] = None
    states: Optional[List[str]] = None
    deliveryFee: Optional[int] = Field(default=None, ge=0)
    freeDeliveryThreshold: Optional[int] = Field(default=None, ge=0)
    minimumOrder: Optional[int] = Field(default=None, ge=0)
    deliveryDays: Optional[List[Weekday]] = None
    deliveryTimeWindows: Optional[List[DeliveryTimeWindow]] = None
    isActive: Optional[bool] = None

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("zipCodes")
    @classmethod
    def validate_zip_codes(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        for zip_code in v:
            if not _ZIP_RE.match(zip_code):
                raise ValueError(f"Invalid ZIP code: {zip_code}")
        return v

    @field_validator("cities")
    @classmethod
    def validate_cities(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        cleaned = [c.strip() for c in v]
        if any(not c for c in cleaned):
            raise ValueError("City names cannot be empty")
        return cleaned

    @field_validator("states")
    @classmethod
    def validate_states(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        for state in v:
            if len(state) != 2:
                raise ValueError("State must be 2-letter code")
        return v

    @field_validator("deliveryDays")
    @classmethod
    def validate_delivery_days(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and len(v) < 1:
            raise ValueError("Select at least one delivery day")
        return v


class DeliveryZoneCreate(DeliveryZoneBase):
    name: str = Field(min_length=1, max_length=255)
    zipCodes: List[str] = Field(default_factory=list)
    cities: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    deliveryFee: int = Field(ge=0)
    deliveryDays: List[Weekday]
    isActive: bool = True

    @model_validator(mode="after")
    def require_coverage(self):
        if not (self.zipCodes or self.cities or self.states):
            raise ValueError("At least one coverage area (ZIP code, city, or state) is required")
        return self


class DeliveryZoneUpdate(DeliveryZoneBase):
    """Partial update: only fields present in the body are applied."""
    pass


class ZoneModerationAction(BaseModel):
    zoneId: str
    action: Literal["FLAG", "UNFLAG", "SUSPEND", "UNSUSPEND"]
    reason: Optional[str] = None


# --- Producer catalog ---
class MarketStandBase(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    locationName: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class MarketStandCreate(MarketStandBase):
    name: str = Field(min_length=1, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class MarketStandUpdate(MarketStandBase):
    pass


class ProductBase(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    price: Optional[int] = Field(default=None, ge=0)
    images: Optional[List[str]] = None
    inventory: Optional[int] = Field(default=None, ge=0)
    isActive: Optional[bool] = None
    deliveryAvailable: Optional[bool] = None
    deliveryZoneId: Optional[str] = None


class ProductCreate(ProductBase):
    name: str = Field(min_length=1, max_length=255)
    price: int = Field(ge=0)
    images: List[str] = Field(default_factory=list)
    inventory: int = Field(default=0, ge=0)
    isActive: bool = True
    deliveryAvailable: bool = False
    marketStandId: Optional[str] = None


class ProductUpdate(ProductBase):
    """Partial update. The stand a product belongs to is fixed at creation."""
    pass


# --- Delivery schedule ---
class ScheduleDay(BaseModel):
    enabled: bool
    inventory: int = Field(ge=0)


class RecurringScheduleBody(BaseModel):
    schedule: Dict[str, ScheduleDay]

    @field_validator("schedule")
    @classmethod
    def validate_days(cls, v: Dict[str, ScheduleDay]) -> Dict[str, ScheduleDay]:
        unknown = [day for day in v if day not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown weekday names: {', '.join(sorted(unknown))}")
        return v


class OneTimeDatesBody(BaseModel):
    dates: List[date]


class DayInventoryBody(BaseModel):
    inventory: int = Field(ge=0)


# --- Approval workflow ---
class ApproveBody(BaseModel):
    id: str = Field(min_length=1)
    note: Optional[str] = None


class RejectBody(BaseModel):
    id: str = Field(min_length=1)
    # Emptiness is checked by the workflow so the rule holds for every caller
    note: Optional[str] = None


# --- Orders ---
class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class ReportIssueBody(BaseModel):
    issueType: IssueType
    description: str = Field(min_length=10)


class IssueUpdateBody(BaseModel):
    issueId: str = Field(min_length=1)
    status: IssueStatus
    resolution: Optional[str] = None
    adminNotes: Optional[str] = None
    refundAmount: Optional[int] = Field(default=None, ge=0)
