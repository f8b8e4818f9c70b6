"""
应用配置
从环境变量 / .env 读取预订引擎配置
"""
import logging
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "HotelBookingEngine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./booking_engine.db"
    SQLITE_BUSY_TIMEOUT: int = 30  # 秒

    # 草稿配置
    DRAFT_TTL_MINUTES: int = 30

    # 确认配置
    CONFIRMATION_TIMEOUT_SECONDS: float = 30.0
    CONFIRM_ON_RESERVE: bool = True  # False 时确认后停留在 reserved，等待支付

    # 其他
    DEFAULT_CURRENCY: str = "USD"
    REFERENCE_CODE_PREFIX: str = "BK"
    DRAFT_CODE_PREFIX: str = "DR"

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


def configure_logging(level: str = None) -> None:
    """初始化根日志配置"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(f"{settings.APP_NAME} logging configured")


# 全局设置实例
settings = Settings()
