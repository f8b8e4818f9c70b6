"""
ORM 对象定义
库存账本 (room_inventory)、房价 (room_rates)、促销码、税费规则、草稿与预订

酒店 / 房型 / 设施 / 附加项为目录协作方提供的只读数据，这里只保留预订引擎
需要读取的字段。所有金额以整数分 (cents) 存储。
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from booking_engine.database import Base


# ============== 枚举定义 ==============

class BookingStatus(str, Enum):
    """预订状态枚举"""
    DRAFT = "draft"              # 草稿
    RESERVED = "reserved"        # 已预留（待支付确认）
    CONFIRMED = "confirmed"      # 已确认
    CHECKED_IN = "checked_in"    # 已入住
    CHECKED_OUT = "checked_out"  # 已离店
    CANCELLED = "cancelled"      # 已取消
    NO_SHOW = "no_show"          # 未到店


class DiscountType(str, Enum):
    """促销码 / 税费计算方式"""
    PERCENT = "percent"  # 百分比
    FIXED = "fixed"      # 固定金额（分）


class TaxFeeScope(str, Enum):
    """税费计费范围"""
    PER_STAY = "per_stay"      # 每次入住
    PER_NIGHT = "per_night"    # 每晚
    PER_PERSON = "per_person"  # 每人


class TaxFeeCategory(str, Enum):
    """税费类别"""
    TAX = "tax"
    FEE = "fee"


# ============== 目录对象（协作方，只读） ==============

class Hotel(Base):
    """酒店"""
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    currency_code = Column(String(3), default="USD")
    is_active = Column(Boolean, default=True)

    room_types = relationship("RoomType", back_populates="hotel")


class RoomType(Base):
    """房型"""
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    max_occupancy = Column(Integer, default=2)           # 最大入住人数
    base_price_cents = Column(Integer, default=0)        # 展示用基础价格
    currency_code = Column(String(3), default="USD")
    is_active = Column(Boolean, default=True)

    hotel = relationship("Hotel", back_populates="room_types")
    amenities = relationship("Amenity", secondary="room_type_amenities", lazy="selectin", viewonly=True)
    addon_links = relationship("RoomTypeAddOn", back_populates="room_type")


class Amenity(Base):
    """设施"""
    __tablename__ = "amenities"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False)  # 设施编码，如 wifi
    name = Column(String(100), nullable=False)


class RoomTypeAmenity(Base):
    """房型-设施关联"""
    __tablename__ = "room_type_amenities"

    room_type_id = Column(Integer, ForeignKey("room_types.id"), primary_key=True)
    amenity_id = Column(Integer, ForeignKey("amenities.id"), primary_key=True)


class AddOn(Base):
    """附加项（加床、早餐等）"""
    __tablename__ = "addons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    unit_type = Column(String(20), default="item")  # item / person / night
    is_active = Column(Boolean, default=True)


class RoomTypeAddOn(Base):
    """房型可选附加项及其价格、数量范围"""
    __tablename__ = "room_type_addons"
    __table_args__ = (
        UniqueConstraint("room_type_id", "addon_id", name="uq_room_type_addon"),
        CheckConstraint("price_cents >= 0", name="ck_room_type_addon_price"),
    )

    id = Column(Integer, primary_key=True, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    addon_id = Column(Integer, ForeignKey("addons.id"), nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    min_quantity = Column(Integer, nullable=False, default=0)
    max_quantity = Column(Integer)                   # None 表示不限
    is_available = Column(Boolean, default=True)

    room_type = relationship("RoomType", back_populates="addon_links")
    addon = relationship("AddOn", lazy="joined")


# ============== 库存与房价 ==============

class InventoryRow(Base):
    """
    每个 (房型, 日期) 一行的库存账本
    有效容量 = available_rooms + overbook_limit（closed 时为 0）
    total_rooms / total_overbook 记录投放上限，取消回补不会超过它们
    """
    __tablename__ = "room_inventory"
    __table_args__ = (
        CheckConstraint("available_rooms >= 0", name="ck_inventory_available"),
        CheckConstraint("overbook_limit >= 0", name="ck_inventory_overbook"),
        Index("idx_room_inventory_date", "date"),
    )

    room_type_id = Column(Integer, ForeignKey("room_types.id"), primary_key=True)
    date = Column(Date, primary_key=True)
    available_rooms = Column(Integer, nullable=False, default=0)
    overbook_limit = Column(Integer, nullable=False, default=0)
    closed = Column(Boolean, nullable=False, default=False)
    total_rooms = Column(Integer, nullable=False)     # 投放房量上限
    total_overbook = Column(Integer, nullable=False)  # 投放超售上限
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault("available_rooms", 0)
        kwargs.setdefault("overbook_limit", 0)
        kwargs.setdefault("closed", False)
        kwargs.setdefault("total_rooms", kwargs["available_rooms"])
        kwargs.setdefault("total_overbook", kwargs["overbook_limit"])
        super().__init__(**kwargs)

    @property
    def effective_capacity(self) -> int:
        """当晚剩余有效容量"""
        if self.closed:
            return 0
        return self.available_rooms + self.overbook_limit


class RateRow(Base):
    """每晚房价，可按价格计划区分"""
    __tablename__ = "room_rates"
    __table_args__ = (
        UniqueConstraint("room_type_id", "date", "rate_plan_id", name="uq_room_rate"),
        Index("idx_room_rate_date", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    date = Column(Date, nullable=False)
    rate_plan_id = Column(Integer)                    # None 表示基础房价
    price_cents = Column(Integer, nullable=False, default=0)
    currency_code = Column(String(3), default="USD")
    min_stay = Column(Integer)
    max_stay = Column(Integer)
    closed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ============== 促销与税费 ==============

class PromoCode(Base):
    """促销码 - usage_count 只在确认成功时单调递增"""
    __tablename__ = "promo_codes"
    __table_args__ = (
        UniqueConstraint("hotel_id", "code", name="uq_promo_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    code = Column(String(50), nullable=False)
    type = Column(SQLEnum(DiscountType), nullable=False)
    value = Column(Integer, nullable=False, default=0)   # 百分比 0..100 或分
    start_date = Column(Date)
    end_date = Column(Date)
    min_nights = Column(Integer)
    min_amount_cents = Column(Integer)
    max_discount_cents = Column(Integer)
    usage_limit = Column(Integer)                        # None 表示不限
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TaxFeeRule(Base):
    """税费规则"""
    __tablename__ = "tax_fee_rules"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    category = Column(SQLEnum(TaxFeeCategory), nullable=False, default=TaxFeeCategory.TAX)
    type = Column(SQLEnum(DiscountType), nullable=False)
    value = Column(Integer, nullable=False, default=0)   # 百分比 0..100 或分
    scope = Column(SQLEnum(TaxFeeScope), nullable=False, default=TaxFeeScope.PER_STAY)
    included_in_price = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, default=True)


# ============== 草稿 ==============

class BookingDraft(Base):
    """
    预订草稿 - 已定价但不占用库存
    按 session_key 唯一，重复提交原地更新
    """
    __tablename__ = "booking_drafts"

    id = Column(Integer, primary_key=True, index=True)
    session_key = Column(String(100), unique=True, nullable=False)  # 会话或账户标识
    reference_code = Column(String(30), nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    rate_plan_id = Column(Integer)
    status = Column(SQLEnum(BookingStatus), nullable=False, default=BookingStatus.DRAFT)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    num_adults = Column(Integer, nullable=False, default=1)
    num_children = Column(Integer, nullable=False, default=0)
    add_ons_json = Column(Text)                       # [{"addon_id": 1, "quantity": 2}]
    promo_code = Column(String(50))
    contact_email = Column(String(100), index=True)
    contact_phone = Column(String(30))
    base_amount_cents = Column(Integer, nullable=False, default=0)
    add_ons_amount_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    discount_amount_cents = Column(Integer, nullable=False, default=0)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    balance_due_cents = Column(Integer, nullable=False, default=0)
    price_breakdown_json = Column(Text)               # 完整价格明细快照
    currency_code = Column(String(3), default="USD")
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_expired(self, now: datetime = None) -> bool:
        """检查草稿是否过期"""
        return (now or datetime.utcnow()) >= self.expires_at


# ============== 预订 ==============

class Booking(Base):
    """
    预订 - 只由预订确认引擎创建
    不变式：Σ items.price + add_ons + tax + fee - discount == total_amount_cents
    """
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_booking_dates", "check_in_date", "check_out_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reference_code = Column(String(30), unique=True, nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    rate_plan_id = Column(Integer)
    guest_ref = Column(String(100), nullable=False)   # 客人 / 账户目录的外键（不透明）
    guest_name = Column(String(100))
    guest_email = Column(String(100))
    guest_phone = Column(String(30))
    status = Column(SQLEnum(BookingStatus), nullable=False, default=BookingStatus.RESERVED, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    num_adults = Column(Integer, nullable=False, default=1)
    num_children = Column(Integer, nullable=False, default=0)
    base_amount_cents = Column(Integer, nullable=False, default=0)
    add_ons_amount_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    discount_amount_cents = Column(Integer, nullable=False, default=0)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    paid_amount_cents = Column(Integer, nullable=False, default=0)
    balance_due_cents = Column(Integer, nullable=False, default=0)
    currency_code = Column(String(3), default="USD")
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"))
    payment_ref = Column(String(100))
    notes = Column(Text)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "BookingItem", back_populates="booking", lazy="selectin",
        order_by="BookingItem.date", cascade="all, delete-orphan"
    )
    add_ons = relationship(
        "BookingAddOn", back_populates="booking", lazy="selectin",
        cascade="all, delete-orphan"
    )
    payments = relationship("Payment", back_populates="booking", lazy="selectin")

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days


class BookingItem(Base):
    """预订明细 - 每晚一行，记录确认时的价格 / 税 / 费快照"""
    __tablename__ = "booking_items"
    __table_args__ = (
        UniqueConstraint("booking_id", "room_type_id", "date", name="uq_booking_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    rate_plan_id = Column(Integer)
    date = Column(Date, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="items")


class BookingAddOn(Base):
    """预订附加项快照"""
    __tablename__ = "booking_addons"
    __table_args__ = (
        UniqueConstraint("booking_id", "room_type_id", "addon_id", name="uq_booking_addon"),
        CheckConstraint("quantity > 0", name="ck_booking_addon_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    addon_id = Column(Integer, ForeignKey("addons.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(Integer, nullable=False, default=0)
    total_price_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="add_ons")


class Payment(Base):
    """支付记录 - 由支付协作方产生，引擎只登记"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    currency_code = Column(String(3), default="USD")
    status = Column(String(20), nullable=False, default="succeeded")
    method = Column(String(20), nullable=False, default="card")
    processor = Column(String(30), nullable=False, default="manual")
    processor_payment_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="payments")
