"""Entity domain models for users, listings, and interests.

All three families share the moderation fields (``status``, ``moderated_by``,
``moderated_at``, ``rejection_reason``). Listings are a tagged variant: one
base shape plus a typed ``details`` payload selected by ``listing_type``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from freeco.auth.models import Role
from freeco.moderation.errors import ValidationError


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntityFamily(str, Enum):
    """Group of records sharing a status domain and transition rules."""

    user = "user"
    listing = "listing"
    interest = "interest"

    @property
    def status_enum(self) -> type[Enum]:
        return {
            EntityFamily.user: UserStatus,
            EntityFamily.listing: ListingStatus,
            EntityFamily.interest: InterestStatus,
        }[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def parse_status(self, value: str) -> Enum:
        """Return the family's status member for *value*.

        Raises ``ValidationError`` for literals outside the family's domain.
        """
        enum_cls = self.status_enum
        if self is EntityFamily.interest and value == "approved":
            value = InterestStatus.accepted.value
        try:
            return enum_cls(value)
        except ValueError:
            valid = [s.value for s in enum_cls]
            raise ValidationError(
                f"Invalid {self.value} status: {value}. Valid statuses: {valid}"
            )


class UserStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"
    rejected = "rejected"
    suspended = "suspended"


class ListingStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"
    rejected = "rejected"


class InterestStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class ListingType(str, Enum):
    """Discriminator for the listing payload."""

    product = "product"
    service = "service"
    job = "job"
    matrimony = "matrimony"


# ---------------------------------------------------------------------------
# Listing payloads
# ---------------------------------------------------------------------------


@dataclass
class ProductDetails:
    price: float = 0.0
    condition: str = ""  # new | used | refurbished
    category: str = ""


@dataclass
class ServiceDetails:
    service_type: str = ""
    rate: float = 0.0
    availability: str = ""


@dataclass
class JobDetails:
    job_title: str = ""
    company: str = ""
    salary: str = ""
    location: str = ""


@dataclass
class MatrimonyDetails:
    age: int = 0
    gender: str = ""
    religion: str = ""
    profession: str = ""


ListingDetails = Union[ProductDetails, ServiceDetails, JobDetails, MatrimonyDetails]

LISTING_DETAILS: dict[ListingType, type] = {
    ListingType.product: ProductDetails,
    ListingType.service: ServiceDetails,
    ListingType.job: JobDetails,
    ListingType.matrimony: MatrimonyDetails,
}


def parse_listing_type(value: str) -> ListingType:
    try:
        return ListingType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid listing type: {value}. Valid types: {[t.value for t in ListingType]}"
        )


def details_from_dict(listing_type: ListingType, data: Optional[dict[str, Any]]) -> ListingDetails:
    """Build the typed payload for *listing_type*, rejecting unknown keys."""
    cls = LISTING_DETAILS[listing_type]
    data = dict(data or {})
    allowed = {f.name: f.type for f in fields(cls)}
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unknown {listing_type.value} fields: {unknown}",
            details={"allowed": sorted(allowed)},
        )
    defaults = cls()
    for name, value in data.items():
        expected = type(getattr(defaults, name))
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            data[name] = float(value)
        elif not isinstance(value, expected) or isinstance(value, bool):
            raise ValidationError(
                f"Field '{name}' of a {listing_type.value} listing must be {expected.__name__}"
            )
    return cls(**data)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class User:
    """A registered marketplace user."""

    family: ClassVar[EntityFamily] = EntityFamily.user

    id: str
    first_name: str
    last_name: str
    email: str
    phone_number: str = ""
    role: Role = Role.user
    status: UserStatus = UserStatus.active
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow_iso()
        if not self.updated_at:
            self.updated_at = self.created_at
        if not isinstance(self.role, Role):
            self.role = Role(self.role)
        self.status = self.family.parse_status(self.status)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Listing:
    """A classified listing of any type."""

    family: ClassVar[EntityFamily] = EntityFamily.listing

    id: str
    listing_type: ListingType
    title: str
    user: str
    description: str = ""
    images: list[str] = field(default_factory=list)
    details: Optional[ListingDetails] = None
    status: ListingStatus = ListingStatus.pending
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    expires_at: str = ""
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow_iso()
        if not self.updated_at:
            self.updated_at = self.created_at
        self.listing_type = parse_listing_type(self.listing_type)
        if self.details is None or isinstance(self.details, dict):
            self.details = details_from_dict(self.listing_type, self.details)
        elif not isinstance(self.details, LISTING_DETAILS[self.listing_type]):
            raise ValidationError(
                f"Details of type {type(self.details).__name__} do not match "
                f"listing type '{self.listing_type.value}'"
            )
        self.status = self.family.parse_status(self.status)

    @property
    def display_title(self) -> str:
        """Title shown in notifications; job listings fall back to the job title."""
        if self.title:
            return self.title
        if isinstance(self.details, JobDetails):
            return self.details.job_title
        return ""


@dataclass
class Interest:
    """A user's interest in another user's listing."""

    family: ClassVar[EntityFamily] = EntityFamily.interest

    id: str
    sender: str
    receiver: str
    listing: str
    message: str = ""
    status: InterestStatus = InterestStatus.pending
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow_iso()
        if not self.updated_at:
            self.updated_at = self.created_at
        self.status = self.family.parse_status(self.status)


Entity = Union[User, Listing, Interest]

ENTITY_CLASSES: dict[EntityFamily, type] = {
    EntityFamily.user: User,
    EntityFamily.listing: Listing,
    EntityFamily.interest: Interest,
}

# Fields that can never change after creation.
IMMUTABLE_FIELDS: dict[EntityFamily, frozenset[str]] = {
    EntityFamily.user: frozenset({"id", "created_at"}),
    EntityFamily.listing: frozenset({"id", "user", "listing_type", "created_at"}),
    EntityFamily.interest: frozenset({"id", "sender", "receiver", "listing", "created_at"}),
}

# Fields written only by moderation transitions.
MODERATION_FIELDS = frozenset({"status", "moderated_by", "moderated_at", "rejection_reason"})


def parse_family(value: str) -> EntityFamily:
    """Accept ``user``/``users`` style names and return the family."""
    name = value.lower().rstrip("s") if isinstance(value, str) else value
    try:
        return EntityFamily(name)
    except ValueError:
        raise ValidationError(
            f"Invalid entity family: {value}. Valid families: {[f.value for f in EntityFamily]}"
        )
