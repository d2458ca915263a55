"""
Listing and user data models for the Listings Service.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_listing_id() -> str:
    """Generate a public listing identifier."""
    return f"PROP{uuid.uuid4().hex[:8].upper()}"


def parse_available_from(value: Any) -> Any:
    """Accept ISO dates as well as the legacy DD/MM/YY form used by the CSV exports."""
    if isinstance(value, str) and value.count("/") == 2:
        day, month, year = (part.strip() for part in value.split("/"))
        if len(year) == 2:
            year = f"20{year}"
        try:
            return date(int(year), int(month), int(day))
        except ValueError as exc:
            raise ValueError(f"Invalid availableFrom date '{value}'") from exc
    return value


class Furnishing(str, Enum):
    """Furnishing state of a listing."""
    FURNISHED = "Furnished"
    UNFURNISHED = "Unfurnished"
    SEMI = "Semi"


class ListedBy(str, Enum):
    """Lister category."""
    BUILDER = "Builder"
    OWNER = "Owner"
    AGENT = "Agent"


class ListingType(str, Enum):
    """Listing category."""
    RENT = "rent"
    SALE = "sale"


class CamelModel(BaseModel):
    """Base model exposing camelCase field aliases on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_document(self) -> Dict[str, Any]:
        """JSON-native representation, as stored in the cache and returned to clients."""
        return self.model_dump(mode="json", by_alias=True)


class Listing(CamelModel):
    """A property listing."""
    listing_id: str = Field(default_factory=generate_listing_id)
    title: str
    type: str
    price: float
    state: str
    city: str
    area_sq_ft: int
    bedrooms: int
    bathrooms: int
    amenities: List[str] = Field(default_factory=list)
    furnished: Furnishing
    available_from: date
    listed_by: ListedBy
    tags: List[str] = Field(default_factory=list)
    color_theme: str = "#FFFFFF"
    rating: float = 0.0
    is_verified: bool = False
    listing_type: ListingType
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("available_from", mode="before")
    @classmethod
    def coerce_available_from(cls, value: Any) -> Any:
        return parse_available_from(value)


class ListingCreateRequest(CamelModel):
    """Request model for creating a listing."""
    listing_id: Optional[str] = Field(None, description="Public identifier; generated when omitted")
    title: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    state: str
    city: str
    area_sq_ft: int = Field(..., ge=0)
    bedrooms: int = Field(..., ge=0)
    bathrooms: int = Field(..., ge=0)
    amenities: List[str] = Field(default_factory=list)
    furnished: Furnishing
    available_from: date
    listed_by: ListedBy
    tags: List[str] = Field(default_factory=list)
    color_theme: str = "#FFFFFF"
    rating: float = Field(0.0, ge=0, le=5)
    is_verified: bool = False
    listing_type: ListingType

    @field_validator("available_from", mode="before")
    @classmethod
    def coerce_available_from(cls, value: Any) -> Any:
        return parse_available_from(value)

    def to_listing(self, created_by: str) -> Listing:
        data = self.model_dump(exclude_none=True)
        return Listing(**data, created_by=created_by)


class ListingUpdateRequest(CamelModel):
    """Request model for a partial listing update."""
    title: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    state: Optional[str] = None
    city: Optional[str] = None
    area_sq_ft: Optional[int] = Field(None, ge=0)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    amenities: Optional[List[str]] = None
    furnished: Optional[Furnishing] = None
    available_from: Optional[date] = None
    listed_by: Optional[ListedBy] = None
    tags: Optional[List[str]] = None
    color_theme: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    is_verified: Optional[bool] = None
    listing_type: Optional[ListingType] = None

    @field_validator("available_from", mode="before")
    @classmethod
    def coerce_available_from(cls, value: Any) -> Any:
        return parse_available_from(value)

    def to_changes(self) -> Dict[str, Any]:
        """Fields explicitly supplied by the client, keyed by model field name."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class Recommendation(CamelModel):
    """A listing recommended to a user by another user."""
    listing_id: str
    recommended_by: str
    recommended_at: datetime = Field(default_factory=utcnow)


class User(CamelModel):
    """Platform user."""
    user_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    email: str
    password_hash: str
    favorites: List[str] = Field(default_factory=list)
    recommendations_received: List[Recommendation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def public_view(self) -> Dict[str, Any]:
        """User document without credentials."""
        return self.model_dump(mode="json", by_alias=True, exclude={"password_hash"})


class Credentials(BaseModel):
    """Register/login request body."""
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value


class RecommendRequest(CamelModel):
    """Request body for recommending a listing."""
    recipient_email: Optional[str] = None
