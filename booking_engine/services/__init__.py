# Business Services
from booking_engine.services.inventory_store import InventoryStore
from booking_engine.services.price_service import PriceService
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.draft_service import DraftService
from booking_engine.services.reservation_service import ReservationService
from booking_engine.services.cancellation_service import CancellationService
from booking_engine.services.booking_status_service import BookingStatusService

__all__ = [
    'InventoryStore', 'PriceService', 'AvailabilityService', 'DraftService',
    'ReservationService', 'CancellationService', 'BookingStatusService'
]
