"""
Pydantic 模式定义
用于预订引擎的请求 / 响应校验与价格明细
"""
import re
from datetime import datetime, date
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, ConfigDict
from booking_engine.models.ontology import (
    BookingStatus, DiscountType, TaxFeeScope, TaxFeeCategory
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9\s\-]{5,19}$")


# ============== 客人 Schemas ==============

class GuestInfo(BaseModel):
    """客人联系信息（来自客人 / 账户目录）"""
    guest_ref: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=100)
    phone: Optional[str] = Field(None, max_length=30)

    @field_validator('name', 'guest_ref')
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("不能为空")
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        """校验邮箱格式"""
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("邮箱格式不正确")
        return v

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not _PHONE_RE.match(v):
            raise ValueError("手机号格式不正确")
        return v


# ============== 入住请求 Schemas ==============

class AddOnSelection(BaseModel):
    addon_id: int
    quantity: int = Field(default=1, ge=1)


class StayRequest(BaseModel):
    """一次入住的公共参数"""
    hotel_id: int
    room_type_id: int
    rate_plan_id: Optional[int] = None
    check_in_date: date
    check_out_date: date
    num_adults: int = Field(default=1, ge=1)
    num_children: int = Field(default=0, ge=0)
    add_ons: List[AddOnSelection] = Field(default_factory=list)
    promo_code: Optional[str] = Field(None, max_length=50)

    @field_validator('promo_code')
    @classmethod
    def normalize_promo_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        return v or None

    @property
    def party_size(self) -> int:
        return self.num_adults + self.num_children

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days


class DraftRequest(StayRequest):
    """创建 / 更新草稿"""
    contact_email: Optional[str] = Field(None, max_length=100)
    contact_phone: Optional[str] = Field(None, max_length=30)

    @field_validator('contact_email')
    @classmethod
    def validate_contact_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("邮箱格式不正确")
        return v


class ConfirmRequest(StayRequest):
    """不经过草稿的直接预订请求"""
    notes: Optional[str] = None


class PaymentIntent(BaseModel):
    """支付协作方返回的支付结果"""
    amount_cents: int = Field(..., ge=0)
    currency_code: Optional[str] = Field(None, max_length=3)
    method: str = Field(default="card", max_length=20)
    processor: str = Field(default="manual", max_length=30)
    processor_payment_id: Optional[str] = Field(None, max_length=100)


# ============== 可用性 Schemas ==============

class AvailabilityQuery(BaseModel):
    """可用房型查询"""
    check_in_date: date
    check_out_date: date
    hotel_id: Optional[int] = None
    room_type_id: Optional[int] = None
    rate_plan_id: Optional[int] = None
    num_adults: int = Field(default=1, ge=1)
    num_children: int = Field(default=0, ge=0)
    min_price_cents: Optional[int] = Field(None, ge=0)
    max_price_cents: Optional[int] = Field(None, ge=0)
    amenity_codes: List[str] = Field(default_factory=list)

    @property
    def party_size(self) -> int:
        return self.num_adults + self.num_children


class NightlyPrice(BaseModel):
    date: date
    price_cents: int


class AvailabilityResult(BaseModel):
    """可用房型（已通过整段覆盖校验）"""
    room_type_id: int
    hotel_id: int
    hotel_name: Optional[str] = None
    name: str
    max_occupancy: int
    currency_code: str
    available_count: int
    nightly_prices: List[NightlyPrice]
    total_price_cents: int
    amenities: List[str] = Field(default_factory=list)


# ============== 价格明细 Schemas ==============

class AddOnLine(BaseModel):
    addon_id: int
    name: Optional[str] = None
    quantity: int
    unit_price_cents: int
    total_price_cents: int


class TaxFeeLine(BaseModel):
    rule_id: Optional[int] = None
    name: str
    category: TaxFeeCategory
    type: DiscountType
    scope: TaxFeeScope
    amount_cents: int
    included_in_price: bool = False


class PriceBreakdown(BaseModel):
    """
    价格明细
    total = base + add_ons + tax + fee - discount
    """
    nights: int
    currency_code: str = "USD"
    nightly_prices: List[NightlyPrice]
    add_on_lines: List[AddOnLine] = Field(default_factory=list)
    tax_fee_lines: List[TaxFeeLine] = Field(default_factory=list)
    promo_code: Optional[str] = None
    base_amount_cents: int
    add_ons_amount_cents: int = 0
    discount_amount_cents: int = 0
    tax_amount_cents: int = 0
    fee_amount_cents: int = 0
    included_tax_amount_cents: int = 0  # 已含在房价中的税费，仅展示
    total_amount_cents: int
    amount_paid_cents: int = 0
    balance_due_cents: int

    @property
    def subtotal_cents(self) -> int:
        return self.base_amount_cents + self.add_ons_amount_cents


# ============== 预订 Schemas ==============

class BookingItemResponse(BaseModel):
    date: date
    price_cents: int
    tax_amount_cents: int
    fee_amount_cents: int
    model_config = ConfigDict(from_attributes=True)


class BookingAddOnResponse(BaseModel):
    addon_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: int
    reference_code: str
    hotel_id: int
    room_type_id: int
    guest_ref: str
    check_in_date: date
    check_out_date: date
    status: BookingStatus
    base_amount_cents: int
    add_ons_amount_cents: int
    tax_amount_cents: int
    fee_amount_cents: int
    discount_amount_cents: int
    total_amount_cents: int
    paid_amount_cents: int
    balance_due_cents: int
    currency_code: str
    payment_ref: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    items: List[BookingItemResponse] = Field(default_factory=list)
    add_ons: List[BookingAddOnResponse] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)
