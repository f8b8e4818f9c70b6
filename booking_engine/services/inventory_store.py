"""
库存与房价存储
按 (房型, 日期) 寻址的库存账本；扣减 / 回补均为单条条件 UPDATE，
不存在"先读后写"的竞态窗口
"""
from typing import Callable, Iterable, List, Optional
from datetime import date, datetime, timedelta
import logging

from sqlalchemy import case, update
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.database import SessionLocal
from booking_engine.exceptions import ValidationError
from booking_engine.models.ontology import InventoryRow, RateRow

logger = logging.getLogger(__name__)


def stay_nights(check_in: date, check_out: date) -> List[date]:
    """入住区间 [check_in, check_out) 内的每一晚（升序）"""
    if check_in >= check_out:
        raise ValidationError(
            "离店日期必须晚于入住日期",
            check_in_date=check_in.isoformat(), check_out_date=check_out.isoformat(),
        )
    return [check_in + timedelta(days=i) for i in range((check_out - check_in).days)]


def _decrement_statement(room_type_id: int, night: date):
    # 先占用实体房，实体房用完后再占用超售额度，available_rooms 永不为负
    has_room = InventoryRow.available_rooms > 0
    return (
        update(InventoryRow)
        .where(
            InventoryRow.room_type_id == room_type_id,
            InventoryRow.date == night,
            InventoryRow.closed == False,
            (InventoryRow.available_rooms + InventoryRow.overbook_limit) > 0,
        )
        .values(
            available_rooms=case(
                (has_room, InventoryRow.available_rooms - 1),
                else_=InventoryRow.available_rooms,
            ),
            overbook_limit=case(
                (has_room, InventoryRow.overbook_limit),
                else_=InventoryRow.overbook_limit - 1,
            ),
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


def _increment_statement(room_type_id: int, night: date):
    # 与扣减顺序相反：先归还超售额度，再归还实体房，均不超过投放上限
    overbook_used = InventoryRow.overbook_limit < InventoryRow.total_overbook
    room_used = InventoryRow.available_rooms < InventoryRow.total_rooms
    return (
        update(InventoryRow)
        .where(
            InventoryRow.room_type_id == room_type_id,
            InventoryRow.date == night,
            overbook_used | room_used,
        )
        .values(
            overbook_limit=case(
                (overbook_used, InventoryRow.overbook_limit + 1),
                else_=InventoryRow.overbook_limit,
            ),
            available_rooms=case(
                (overbook_used, InventoryRow.available_rooms),
                (room_used, InventoryRow.available_rooms + 1),
                else_=InventoryRow.available_rooms,
            ),
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


class InventoryStore:
    """
    库存与房价存储

    公开的变更方法各自在独立事务中执行并在返回前提交；
    increment_nights 在调用方事务中执行，由调用方决定提交或回滚。
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory: sessionmaker = session_factory or SessionLocal

    # ============== 查询 ==============

    def get_inventory(self, room_type_id: int, check_in: date, check_out: date) -> List[InventoryRow]:
        """获取区间内的库存行（按日期升序）"""
        with self._session_factory() as db:
            return self.load_inventory(db, [room_type_id], check_in, check_out)

    def get_rates(self, room_type_id: int, check_in: date, check_out: date,
                  rate_plan_id: Optional[int] = None) -> List[RateRow]:
        """获取区间内适用于价格计划的房价行（按日期升序）"""
        with self._session_factory() as db:
            return self.load_rates(db, [room_type_id], check_in, check_out, rate_plan_id)

    @staticmethod
    def load_inventory(db: Session, room_type_ids: Iterable[int],
                       check_in: date, check_out: date) -> List[InventoryRow]:
        return db.query(InventoryRow).filter(
            InventoryRow.room_type_id.in_(list(room_type_ids)),
            InventoryRow.date >= check_in,
            InventoryRow.date < check_out,
        ).order_by(InventoryRow.room_type_id, InventoryRow.date).all()

    @staticmethod
    def load_rates(db: Session, room_type_ids: Iterable[int], check_in: date,
                   check_out: date, rate_plan_id: Optional[int] = None) -> List[RateRow]:
        query = db.query(RateRow).filter(
            RateRow.room_type_id.in_(list(room_type_ids)),
            RateRow.date >= check_in,
            RateRow.date < check_out,
        )
        if rate_plan_id is None:
            query = query.filter(RateRow.rate_plan_id.is_(None))
        else:
            query = query.filter(RateRow.rate_plan_id == rate_plan_id)
        return query.order_by(RateRow.room_type_id, RateRow.date, RateRow.id).all()

    # ============== 变更 ==============

    def decrement_one_room(self, room_type_id: int, night: date) -> bool:
        """
        扣减一晚一间房

        仅当该晚未关闭且有效容量 > 0 时成功；否则不做任何修改并返回 False。
        """
        with self._session_factory() as db:
            try:
                result = db.execute(_decrement_statement(room_type_id, night))
                db.commit()
            except Exception:
                db.rollback()
                raise
        if result.rowcount != 1:
            logger.info(f"Inventory exhausted or closed: room_type={room_type_id} night={night}")
            return False
        logger.debug(f"Inventory decremented: room_type={room_type_id} night={night}")
        return True

    def increment_one_room(self, room_type_id: int, night: date) -> None:
        """
        回补一晚一间房（取消 / 补偿）

        不超过投放上限；已满或行不存在时记录日志后视为成功。
        """
        with self._session_factory() as db:
            try:
                self._increment(db, room_type_id, night)
                db.commit()
            except Exception:
                db.rollback()
                raise

    def increment_nights(self, db: Session, room_type_id: int, nights: Iterable[date]) -> None:
        """在调用方事务中按日期升序回补多晚"""
        for night in sorted(nights):
            self._increment(db, room_type_id, night)

    @staticmethod
    def _increment(db: Session, room_type_id: int, night: date) -> None:
        result = db.execute(_increment_statement(room_type_id, night))
        if result.rowcount != 1:
            logger.warning(
                f"Inventory credit skipped (at ceiling or missing row): "
                f"room_type={room_type_id} night={night}"
            )
