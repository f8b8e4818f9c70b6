"""
预订引擎异常体系

业务规则拒绝（日期、促销码、库存）携带足够的 details 供调用方重新查询；
数据完整性故障（缺失房价）对外只给出通用提示，完整上下文写入日志。
"""
from typing import Any, Dict, Optional


class BookingEngineError(Exception):
    """预订引擎异常基类"""

    code = "booking_error"
    user_message = "预订处理失败"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.user_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为可返回给调用方的字典"""
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(BookingEngineError, ValueError):
    """请求参数错误（日期非法、缺少客人信息等），未发生任何写入"""

    code = "validation_error"
    user_message = "请求参数无效"


class AddOnQuantityError(ValidationError):
    """附加项数量超出房型配置的范围"""

    code = "addon_quantity_invalid"
    user_message = "附加项数量无效"


class InsufficientInventory(BookingEngineError):
    """确认时库存不足（已完整补偿，可重新查询后重试）"""

    code = "insufficient_inventory"
    user_message = "所选日期房量不足"


class InvalidPromoCode(BookingEngineError):
    """促销码不可用"""

    code = "invalid_promo_code"
    user_message = "促销码不可用"


class PromoCodeExpired(InvalidPromoCode):
    """促销码不在有效期内"""

    code = "promo_code_expired"
    user_message = "促销码不在有效期内"


class PromoCodeUsageLimitReached(InvalidPromoCode):
    """促销码使用次数已满"""

    code = "promo_code_usage_limit_reached"
    user_message = "促销码使用次数已达上限"


class DraftNotFound(BookingEngineError):
    code = "draft_not_found"
    user_message = "预订草稿不存在"


class DraftExpired(BookingEngineError):
    code = "draft_expired"
    user_message = "预订草稿已过期"


class RateMissingForNight(BookingEngineError):
    """区间内某晚没有房价 - 数据完整性故障，非用户可修正"""

    code = "rate_missing_for_night"
    user_message = "暂时无法计算价格，请稍后再试"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.user_message, "details": {}}


class BookingNotFound(BookingEngineError):
    code = "booking_not_found"
    user_message = "预订不存在"


class InvalidStatusTransition(BookingEngineError):
    """当前状态不允许该操作"""

    code = "invalid_status_transition"
    user_message = "当前预订状态不允许该操作"


class ConfirmationTimeout(BookingEngineError):
    """确认超时（库存已补偿）"""

    code = "confirmation_timeout"
    user_message = "预订确认超时，请重试"
