from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
from typing import List
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./debate_rooms.db"

    # 結構化階段每位參與者可發言的回合數，雙方都用完後自動進入投票
    structured_turn_limit: int = 3

    # Lifecycle sweeper
    archive_after_days: int = 7
    sweep_interval_seconds: int = 3600
    sweeper_enabled: bool = True

    message_max_length: int = 5000
    messages_page_size: int = 100

    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def build_engine(database_url: str, **kwargs):
    """
    建立 Engine

    SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    這允許多執行緒存取同一個 SQLite 連線（同步 DB 工作在 threadpool 執行）
    """
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        pool_pre_ping=True,
        **kwargs
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def _find_session(args, kwargs):
    for arg in args:
        if isinstance(arg, Session):
            return arg
    db = kwargs.get("db")
    return db if isinstance(db, Session) else None


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def some_business_logic(db: Session, ...):
            room = Room(...)
            db.add(room)
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 參數中必須有一個 Session（位置參數或 db=...）
        - 不要在函式內手動 commit（decorator 會處理）
        - 寫入失敗不會重試，避免重複訊息；由呼叫者決定是否重新送出
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)

        if db is None:
            raise ValueError(
                f"@transactional requires a 'db: Session' argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper


def retry_read(func):
    """
    Read-only decorator：暫時性錯誤（OperationalError）時重試一次

    只能用在冪等的讀取上。寫入一律不重試。
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OperationalError as e:
            logger.warning(f"Transient read failure in {func.__name__}, retrying once: {e}")
            db = _find_session(args, kwargs)
            if db is not None:
                db.rollback()
            return func(*args, **kwargs)

    return wrapper
