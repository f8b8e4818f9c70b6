"""
配置与数据库工厂测试
"""
from sqlalchemy import text

from booking_engine.config import Settings
from booking_engine.database import Base, create_db_engine, create_session_factory
from booking_engine.exceptions import (
    BookingEngineError, InsufficientInventory, PromoCodeExpired, InvalidPromoCode,
    RateMissingForNight, ValidationError,
)


class TestSettings:

    def test_defaults(self):
        s = Settings()
        assert s.DRAFT_TTL_MINUTES == 30
        assert s.CONFIRM_ON_RESERVE is True
        assert s.REFERENCE_CODE_PREFIX == "BK"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DRAFT_TTL_MINUTES", "5")
        monkeypatch.setenv("CONFIRM_ON_RESERVE", "false")
        s = Settings()
        assert s.DRAFT_TTL_MINUTES == 5
        assert s.CONFIRM_ON_RESERVE is False


class TestDatabase:

    def test_file_database_uses_wal(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'x.db'}")
        Base.metadata.create_all(bind=engine)
        with create_session_factory(engine)() as db:
            assert db.execute(text("PRAGMA journal_mode")).scalar() == "wal"
            assert db.execute(text("PRAGMA foreign_keys")).scalar() == 1
        engine.dispose()


class TestExceptions:

    def test_to_dict(self):
        err = InsufficientInventory(room_type_id=3, night="2024-12-20")
        assert err.to_dict() == {
            "code": "insufficient_inventory",
            "message": "所选日期房量不足",
            "details": {"room_type_id": 3, "night": "2024-12-20"},
        }

    def test_hierarchy(self):
        assert issubclass(PromoCodeExpired, InvalidPromoCode)
        assert issubclass(ValidationError, ValueError)
        assert issubclass(RateMissingForNight, BookingEngineError)

    def test_rate_missing_hides_details(self):
        err = RateMissingForNight(night="2024-12-20")
        assert err.details == {"night": "2024-12-20"}
        assert err.to_dict()["details"] == {}
