"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from sqlalchemy.pool import StaticPool

from booking_engine.database import Base, create_db_engine, create_session_factory
from booking_engine.engine.event_bus import event_bus
from booking_engine.models import ontology  # noqa: F401
from booking_engine.models.ontology import (
    Amenity, Hotel, InventoryRow, RateRow, RoomType, RoomTypeAmenity,
)
from booking_engine.notification.channel import NotificationChannelRegistry

# 服务内部以 UTC 日期判断"今天"
TODAY = datetime.utcnow().date()


def night(offset: int):
    """今天之后第 offset 天"""
    return TODAY + timedelta(days=offset)


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """服务使用的会话工厂"""
    return create_session_factory(db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话（用于准备数据）"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_event_bus():
    """每个测试前后清空事件总线与通知渠道"""
    event_bus.clear()
    NotificationChannelRegistry().clear()
    yield
    event_bus.clear()
    NotificationChannelRegistry().clear()


# ============== 目录与库存 Fixtures ==============

def seed_room_type(db, hotel, name="Deluxe King", max_occupancy=2, rooms=5, overbook=0,
                   price_cents=10000, days=10, start=1, amenities=()):
    """创建房型并为 [start, start+days) 每晚投放库存与基础房价"""
    rt = RoomType(hotel_id=hotel.id, name=name, max_occupancy=max_occupancy,
                  base_price_cents=price_cents, currency_code="USD")
    db.add(rt)
    db.flush()
    for code in amenities:
        amenity = db.query(Amenity).filter(Amenity.code == code).first()
        if amenity is None:
            amenity = Amenity(code=code, name=code.replace("_", " ").title())
            db.add(amenity)
            db.flush()
        db.add(RoomTypeAmenity(room_type_id=rt.id, amenity_id=amenity.id))
    for offset in range(start, start + days):
        db.add(InventoryRow(room_type_id=rt.id, date=night(offset),
                            available_rooms=rooms, overbook_limit=overbook))
        db.add(RateRow(room_type_id=rt.id, date=night(offset), price_cents=price_cents))
    db.flush()
    return rt


@pytest.fixture
def catalog(db_session):
    """一家酒店、一个房型（5 间，每晚 10000 分，未来 10 晚）"""
    hotel = Hotel(name="Harbour View", currency_code="USD")
    db_session.add(hotel)
    db_session.flush()
    rt = seed_room_type(db_session, hotel, amenities=("wifi", "balcony"))
    db_session.commit()
    return SimpleNamespace(hotel_id=hotel.id, room_type_id=rt.id)


def read_inventory(session_factory, room_type_id, offset):
    """用新会话读取某晚库存"""
    with session_factory() as db:
        return db.get(InventoryRow, (room_type_id, night(offset)))
