"""
booking_engine/domain/pricing.py

定价引擎 - 纯函数，不读写存储

计算顺序：
- 房费合计（每晚都必须有价格）
- 附加项合计（逐项校验数量范围）
- 促销折扣（资格校验 -> 原始折扣 -> 封顶 -> 不超过小计）
- 税费（按范围乘以 1 / 晚数 / 人数，含在房价中的只做展示）

全部使用整数分运算。
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence
import logging

from booking_engine.exceptions import (
    AddOnQuantityError, InvalidPromoCode, PromoCodeExpired,
    PromoCodeUsageLimitReached, RateMissingForNight, ValidationError,
)
from booking_engine.models.ontology import DiscountType, TaxFeeScope, TaxFeeCategory
from booking_engine.models.schemas import (
    AddOnLine, NightlyPrice, PriceBreakdown, TaxFeeLine,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddOnCharge:
    """已选附加项及其房型配置"""

    addon_id: int
    quantity: int
    unit_price_cents: int
    min_quantity: int = 0
    max_quantity: Optional[int] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class PromoTerms:
    """促销码条款快照"""

    code: str
    type: DiscountType
    value: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_nights: Optional[int] = None
    min_amount_cents: Optional[int] = None
    max_discount_cents: Optional[int] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    is_active: bool = True

    @classmethod
    def from_orm(cls, promo) -> "PromoTerms":
        return cls(
            code=promo.code,
            type=DiscountType(promo.type),
            value=promo.value,
            start_date=promo.start_date,
            end_date=promo.end_date,
            min_nights=promo.min_nights,
            min_amount_cents=promo.min_amount_cents,
            max_discount_cents=promo.max_discount_cents,
            usage_limit=promo.usage_limit,
            usage_count=promo.usage_count or 0,
            is_active=bool(promo.is_active),
        )


@dataclass(frozen=True)
class TaxFeeTerms:
    """税费规则快照"""

    name: str
    type: DiscountType
    value: int
    scope: TaxFeeScope = TaxFeeScope.PER_STAY
    category: TaxFeeCategory = TaxFeeCategory.TAX
    included_in_price: bool = False
    is_active: bool = True
    rule_id: Optional[int] = None

    @classmethod
    def from_orm(cls, rule) -> "TaxFeeTerms":
        return cls(
            name=rule.name,
            type=DiscountType(rule.type),
            value=rule.value,
            scope=TaxFeeScope(rule.scope),
            category=TaxFeeCategory(rule.category),
            included_in_price=bool(rule.included_in_price),
            is_active=bool(rule.is_active),
            rule_id=rule.id,
        )


def percent_of(amount_cents: int, percent: int) -> int:
    """amount × percent / 100，四舍五入到分（半数进位）"""
    if amount_cents < 0 or percent < 0:
        raise ValidationError("金额与百分比不能为负数")
    return (amount_cents * percent + 50) // 100


def sum_nightly(nights: Sequence[date], nightly_prices: Sequence[NightlyPrice]) -> int:
    """
    房费合计

    Raises:
        RateMissingForNight: 某晚缺少价格
    """
    by_date = {p.date: p.price_cents for p in nightly_prices}
    total = 0
    for night in nights:
        if night not in by_date:
            raise RateMissingForNight(night=night.isoformat())
        total += by_date[night]
    return total


def price_add_ons(add_ons: Sequence[AddOnCharge]) -> List[AddOnLine]:
    """附加项逐项计价，数量超出 [min, max] 时拒绝"""
    lines = []
    for charge in add_ons:
        if charge.quantity < max(charge.min_quantity, 1):
            raise AddOnQuantityError(
                f"附加项 {charge.addon_id} 数量不能少于 {max(charge.min_quantity, 1)}",
                addon_id=charge.addon_id, quantity=charge.quantity,
                min_quantity=charge.min_quantity,
            )
        if charge.max_quantity is not None and charge.quantity > charge.max_quantity:
            raise AddOnQuantityError(
                f"附加项 {charge.addon_id} 数量不能超过 {charge.max_quantity}",
                addon_id=charge.addon_id, quantity=charge.quantity,
                max_quantity=charge.max_quantity,
            )
        lines.append(AddOnLine(
            addon_id=charge.addon_id,
            name=charge.name,
            quantity=charge.quantity,
            unit_price_cents=charge.unit_price_cents,
            total_price_cents=charge.unit_price_cents * charge.quantity,
        ))
    return lines


def check_promo_eligibility(promo: PromoTerms, nights: int, subtotal_cents: int, as_of: date) -> None:
    """
    促销码资格校验，不满足时抛出对应的类型化异常

    Raises:
        InvalidPromoCode: 未启用 / 晚数不足 / 金额不足
        PromoCodeExpired: 不在 [start_date, end_date] 内
        PromoCodeUsageLimitReached: usage_count >= usage_limit
    """
    if not promo.is_active:
        raise InvalidPromoCode(f"促销码 {promo.code} 未启用", code=promo.code)
    if promo.start_date and as_of < promo.start_date:
        raise PromoCodeExpired(f"促销码 {promo.code} 尚未生效", code=promo.code,
                               start_date=promo.start_date.isoformat())
    if promo.end_date and as_of > promo.end_date:
        raise PromoCodeExpired(f"促销码 {promo.code} 已过期", code=promo.code,
                               end_date=promo.end_date.isoformat())
    if promo.min_nights is not None and nights < promo.min_nights:
        raise InvalidPromoCode(f"促销码 {promo.code} 要求至少入住 {promo.min_nights} 晚",
                               code=promo.code, min_nights=promo.min_nights)
    if promo.min_amount_cents is not None and subtotal_cents < promo.min_amount_cents:
        raise InvalidPromoCode(f"促销码 {promo.code} 未达到最低消费",
                               code=promo.code, min_amount_cents=promo.min_amount_cents)
    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        raise PromoCodeUsageLimitReached(f"促销码 {promo.code} 使用次数已满",
                                         code=promo.code, usage_limit=promo.usage_limit)


def compute_discount(promo: PromoTerms, subtotal_cents: int) -> int:
    """计算折扣：原始折扣 -> max_discount_cents 封顶 -> 不超过小计"""
    if promo.type == DiscountType.PERCENT:
        discount = percent_of(subtotal_cents, promo.value)
    else:
        discount = promo.value
    if promo.max_discount_cents is not None:
        discount = min(discount, promo.max_discount_cents)
    return max(0, min(discount, subtotal_cents))


def _scope_multiplier(scope: TaxFeeScope, nights: int, party_size: int) -> int:
    if scope == TaxFeeScope.PER_NIGHT:
        return nights
    if scope == TaxFeeScope.PER_PERSON:
        return party_size
    return 1


def compute_tax_fee_lines(rules: Sequence[TaxFeeTerms], taxable_base_cents: int,
                          nights: int, party_size: int) -> List[TaxFeeLine]:
    """
    逐条计算启用的税费规则

    百分比规则作用于整段入住的计税基数，范围只对固定金额规则生效。
    """
    lines = []
    for rule in rules:
        if not rule.is_active:
            continue
        if rule.type == DiscountType.PERCENT:
            amount = percent_of(taxable_base_cents, rule.value)
        else:
            amount = rule.value * _scope_multiplier(rule.scope, nights, party_size)
        lines.append(TaxFeeLine(
            rule_id=rule.rule_id,
            name=rule.name,
            category=rule.category,
            type=rule.type,
            scope=rule.scope,
            amount_cents=amount,
            included_in_price=rule.included_in_price,
        ))
    return lines


def calculate_price(
    nights: Sequence[date],
    nightly_prices: Sequence[NightlyPrice],
    add_ons: Sequence[AddOnCharge] = (),
    promo: Optional[PromoTerms] = None,
    tax_rules: Sequence[TaxFeeTerms] = (),
    party_size: int = 1,
    as_of: Optional[date] = None,
    amount_paid_cents: int = 0,
    currency_code: str = "USD",
) -> PriceBreakdown:
    """
    计算一次入住的价格明细

    Args:
        nights: 入住的每一晚（升序）
        nightly_prices: 每晚价格
        add_ons: 已选附加项
        promo: 促销码条款
        tax_rules: 酒店税费规则
        party_size: 入住人数
        as_of: 促销有效期判断日期，默认今天
        amount_paid_cents: 已支付金额

    Returns:
        PriceBreakdown
    """
    if not nights:
        raise ValidationError("入住晚数必须大于 0")
    if party_size < 1:
        raise ValidationError("入住人数必须大于 0")

    night_count = len(nights)
    base = sum_nightly(nights, nightly_prices)
    price_by_date = {p.date: p.price_cents for p in nightly_prices}
    nightly_lines = [NightlyPrice(date=n, price_cents=price_by_date[n]) for n in nights]

    add_on_lines = price_add_ons(add_ons)
    add_ons_total = sum(line.total_price_cents for line in add_on_lines)
    subtotal = base + add_ons_total

    discount = 0
    if promo is not None:
        check_promo_eligibility(promo, night_count, subtotal, as_of or date.today())
        discount = compute_discount(promo, subtotal)

    tax_fee_lines = compute_tax_fee_lines(tax_rules, subtotal - discount, night_count, party_size)
    tax = sum(l.amount_cents for l in tax_fee_lines
              if l.category == TaxFeeCategory.TAX and not l.included_in_price)
    fee = sum(l.amount_cents for l in tax_fee_lines
              if l.category == TaxFeeCategory.FEE and not l.included_in_price)
    included = sum(l.amount_cents for l in tax_fee_lines if l.included_in_price)

    total = base + add_ons_total + tax + fee - discount

    return PriceBreakdown(
        nights=night_count,
        currency_code=currency_code,
        nightly_prices=nightly_lines,
        add_on_lines=add_on_lines,
        tax_fee_lines=tax_fee_lines,
        promo_code=promo.code if promo else None,
        base_amount_cents=base,
        add_ons_amount_cents=add_ons_total,
        discount_amount_cents=discount,
        tax_amount_cents=tax,
        fee_amount_cents=fee,
        included_tax_amount_cents=included,
        total_amount_cents=total,
        amount_paid_cents=amount_paid_cents,
        balance_due_cents=total - amount_paid_cents,
    )


def allocate_evenly(amount_cents: int, parts: int) -> List[int]:
    """把金额平均分到 parts 份，余数从前往后各加 1 分，总和不变"""
    if parts <= 0:
        raise ValidationError("分摊份数必须大于 0")
    quotient, remainder = divmod(amount_cents, parts)
    return [quotient + 1 if i < remainder else quotient for i in range(parts)]


def allocate_per_night(breakdown: PriceBreakdown) -> List[dict]:
    """
    生成每晚的价格 / 税 / 费快照，用于 BookingItem

    税费按晚平均分摊，Σ tax_amount_cents / fee_amount_cents 与明细总额一致。
    """
    taxes = allocate_evenly(breakdown.tax_amount_cents, breakdown.nights)
    fees = allocate_evenly(breakdown.fee_amount_cents, breakdown.nights)
    return [
        {
            "date": night.date,
            "price_cents": night.price_cents,
            "tax_amount_cents": taxes[i],
            "fee_amount_cents": fees[i],
        }
        for i, night in enumerate(breakdown.nightly_prices)
    ]
