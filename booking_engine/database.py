"""
数据库配置 - SQLAlchemy 持久化层
库存账本是唯一的共享可变资源，文件型 SQLite 上所有写事务以 BEGIN IMMEDIATE 串行化
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from booking_engine.config import settings

Base = declarative_base()


def _is_memory_url(url: str) -> bool:
    return ":memory:" in url or url in ("sqlite://", "sqlite:///")


def create_db_engine(url: str = None, **kwargs) -> Engine:
    """
    创建数据库引擎

    文件型 SQLite 关闭 pysqlite 的隐式事务管理，改为在每个事务开始时
    发出 BEGIN IMMEDIATE，使并发写者在数据库层面排队等待 busy timeout，
    而不是在 SHARED -> RESERVED 升级时相互死锁。
    """
    url = url or settings.DATABASE_URL
    kwargs.setdefault("echo", settings.DEBUG)
    if not url.startswith("sqlite"):
        return create_engine(url, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    connect_args.setdefault("timeout", settings.SQLITE_BUSY_TIMEOUT)
    engine = create_engine(url, connect_args=connect_args, **kwargs)
    file_backed = not _is_memory_url(url)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if file_backed:
            # 启用 WAL 模式以提高并发性能
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()
        if file_backed:
            dbapi_connection.isolation_level = None

    if file_backed:
        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(bind: Engine) -> sessionmaker:
    """
    创建会话工厂

    expire_on_commit=False：服务返回的 ORM 对象在会话关闭后仍可读取
    """
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = create_db_engine()

SessionLocal = create_session_factory(engine)


def get_db():
    """获取数据库会话（生成器）"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """初始化数据库表"""
    from booking_engine.models import ontology  # noqa
    Base.metadata.create_all(bind=bind or engine)
