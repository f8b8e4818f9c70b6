"""
domain - 不依赖存储的业务规则（定价、生命周期）
"""
from booking_engine.domain.pricing import (
    AddOnCharge,
    PromoTerms,
    TaxFeeTerms,
    calculate_price,
    check_promo_eligibility,
    allocate_per_night,
)
from booking_engine.domain.lifecycle import (
    BookingTrigger,
    TERMINAL_STATUSES,
    CANCELLABLE_STATUSES,
    booking_state_machine,
    next_status,
)

__all__ = [
    "AddOnCharge", "PromoTerms", "TaxFeeTerms", "calculate_price",
    "check_promo_eligibility", "allocate_per_night",
    "BookingTrigger", "TERMINAL_STATUSES", "CANCELLABLE_STATUSES",
    "booking_state_machine", "next_status",
]
