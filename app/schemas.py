# Pydantic models (request/response DTOs) used by the API layer.
# Keep models minimal and serializable; business logic lives in services/DB.
from pydantic import BaseModel, Field, ConfigDict, field_validator, EmailStr
from typing import Dict, List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal


# Authentication and user models

# Account types within the marketplace
UserType = Literal["guest", "host", "both"]


def _normalize_email(v):
    if isinstance(v, str):
        v = v.strip().lower()
    return v


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
    return v


# Request payload for user registration
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    user_type: UserType = "guest"

    # Normalize email input to lowercase without surrounding whitespace
    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


# API response for a user record
class UserRead(BaseModel):
    id: int
    email: EmailStr
    user_type: UserType

    model_config = ConfigDict(from_attributes=True)


# Request payload for logging in
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


# OAuth2-style token response bundled with the current user profile
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


# Listings
CancellationPolicyName = Literal["flexible", "moderate", "strict", "super_strict"]


# Base attributes for a listing (shared by create/read)
class ListingBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    base_price_per_night: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    cleaning_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    max_guests: int = Field(1, ge=1, le=50)
    cancellation_policy: CancellationPolicyName = "moderate"
    currency: str = Field("USD", min_length=3, max_length=3)
    is_published: bool = True

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: str) -> str:
        # Trim surrounding whitespace before validation
        return _strip(v)

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().upper()
        return v


# Payload for creating a new listing
class ListingCreate(ListingBase):
    pass


# Response shape when reading a listing from the API
class ListingRead(ListingBase):
    id: int
    host_id: int
    cancellation_policy_summary: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Bookings
BookingStatus = Literal["pending", "confirmed", "cancelled", "completed", "dispute"]
BookingStage = Literal["awaiting_host", "awaiting_guest", "confirmed", "checked_in", "checked_out"]
PaymentStatus = Literal["pending", "completed", "refunded", "failed"]


# Request payload for creating a booking
class BookingCreate(BaseModel):
    listing_id: int = Field(..., ge=1)
    check_in_date: date
    check_out_date: date
    guest_count: int = Field(1, ge=1)
    special_requests: Optional[str] = Field(None, max_length=2000)
    guest_message: Optional[str] = Field(None, max_length=2000)
    discount_code: Optional[str] = Field(None, max_length=50)

    @field_validator("special_requests", "guest_message", "discount_code", mode="before")
    @classmethod
    def strip_text(cls, v):
        v = _strip(v)
        return v or None


# API response for a booking record
class BookingRead(BaseModel):
    id: int
    listing_id: int
    guest_id: int
    host_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int
    nights: int
    status: BookingStatus
    stage: BookingStage
    base_total: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    discount_amount: Decimal
    discount_code: Optional[str] = None
    total_price: Decimal
    currency: str = "USD"
    payment_status: PaymentStatus
    special_requests: Optional[str] = None
    guest_message: Optional[str] = None
    host_response: Optional[str] = None
    host_responded_at: Optional[datetime] = None
    cancelled_by: Optional[Literal["guest", "host"]] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Paged list of bookings
class BookingList(BaseModel):
    items: List[BookingRead]
    total: int
    limit: int
    offset: int


# Optional host note when confirming or rejecting
class HostResponse(BaseModel):
    host_response: Optional[str] = Field(None, max_length=2000)


# Optional cancellation reason
class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)

    @field_validator("reason", mode="before")
    @classmethod
    def strip_reason(cls, v):
        return _strip(v) or None


# Returned after a cancellation; the refund is computed, not paid out
class CancellationResponse(BaseModel):
    booking: BookingRead
    refund_amount: Decimal
    refund_percentage: int
    days_until_check_in: int


# Payment collaborator outcome for a booking
class BookingPaymentUpdate(BaseModel):
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = Field(None, max_length=255)


# Occupying range on the listing calendar
class BlockedRange(BaseModel):
    booking_id: int
    check_in_date: date
    check_out_date: date
    status: BookingStatus


class AvailabilityResponse(BaseModel):
    listing_id: int
    check_in_date: date
    check_out_date: date
    available: bool
    blocked: List[BlockedRange]


class PricingPreviewRequest(BaseModel):
    listing_id: int = Field(..., ge=1)
    check_in_date: date
    check_out_date: date
    discount_amount: Decimal = Field(Decimal("0"), ge=0)


class PriceBreakdownRead(BaseModel):
    base_price: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    discount_amount: Decimal
    total_price: Decimal


class PricingPreviewResponse(BaseModel):
    listing_id: int
    check_in_date: date
    check_out_date: date
    nights: int
    currency: str
    pricing: PriceBreakdownRead


class ListingBookingStats(BaseModel):
    listing_id: int
    total_bookings: int
    confirmed_bookings: int
    booked_nights: int
    total_revenue: Decimal
    average_booking_value: Decimal
    currency: str


# Commission transactions
CommissionStatusName = Literal["pending", "processing", "completed", "failed", "cancelled", "refunded"]


class CommissionRead(BaseModel):
    id: int
    booking_id: int
    listing_id: int
    host_id: int
    guest_id: int
    transaction_reference: str
    booking_total: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    currency: str
    status: CommissionStatusName
    payment_due_date: Optional[date] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_intent_id: Optional[str] = None
    failure_reason: Optional[str] = None
    payment_completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommissionList(BaseModel):
    items: List[CommissionRead]
    total: int
    limit: int
    offset: int


class CommissionProcessRequest(BaseModel):
    payment_provider: Optional[str] = Field(None, max_length=50)
    payment_intent_id: Optional[str] = Field(None, max_length=255)


class CommissionPayRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_provider: Optional[str] = Field(None, max_length=50)
    payment_intent_id: Optional[str] = Field(None, max_length=255)

    @field_validator("payment_method", mode="before")
    @classmethod
    def strip_method(cls, v: str) -> str:
        return _strip(v)


class CommissionFailRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)

    @field_validator("reason", mode="before")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        return _strip(v)


class CommissionPreviewRequest(BaseModel):
    booking_amount: Decimal = Field(..., gt=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    currency: str = Field("USD", min_length=3, max_length=3)


class CommissionPreviewResponse(BaseModel):
    booking_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    host_net_amount: Decimal
    currency: str


class CommissionSummary(BaseModel):
    host_id: int
    transaction_counts: Dict[str, int]
    total_gross_earnings: Decimal
    total_commission: Decimal
    commission_paid: Decimal
    commission_pending: Decimal
    total_net_earnings: Decimal
    commission_rate: Decimal


class CommissionRateResponse(BaseModel):
    commission_rate: Decimal
    description: str
