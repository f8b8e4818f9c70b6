# ORM Models
from booking_engine.models.ontology import (
    Hotel, RoomType, Amenity, RoomTypeAmenity, AddOn, RoomTypeAddOn,
    InventoryRow, RateRow, PromoCode, TaxFeeRule,
    BookingDraft, Booking, BookingItem, BookingAddOn, Payment,
    BookingStatus, DiscountType, TaxFeeScope, TaxFeeCategory
)

__all__ = [
    'Hotel', 'RoomType', 'Amenity', 'RoomTypeAmenity', 'AddOn', 'RoomTypeAddOn',
    'InventoryRow', 'RateRow', 'PromoCode', 'TaxFeeRule',
    'BookingDraft', 'Booking', 'BookingItem', 'BookingAddOn', 'Payment',
    'BookingStatus', 'DiscountType', 'TaxFeeScope', 'TaxFeeCategory'
]
