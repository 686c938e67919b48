"""
Inventory Service — データストア接続

エンジンとセッションファクトリはプロセス全体で1つだけ持つ。
初回アクセス時に遅延生成し、以降は再利用する（接続プール目的であり
在庫数のキャッシュではない。読み取りは毎回ストアに問い合わせる）。
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .config import get_settings
from .errors import InventoryError, StoreQueryFailed, StoreUnavailable

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        with _lock:
            if _engine is None:
                settings = get_settings()
                engine = create_async_engine(settings.database_url, echo=settings.sql_echo)
                _session_factory = sessionmaker(
                    engine, class_=AsyncSession, expire_on_commit=False
                )
                _engine = engine
                logger.info("Created database engine for %s", engine.url.render_as_string())
    return _engine


def get_session_factory() -> sessionmaker:
    get_engine()
    return _session_factory


async def dispose_engine() -> None:
    """エンジンを破棄する。次回 get_engine() で作り直される。"""
    global _engine, _session_factory
    with _lock:
        engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()


def translate_store_error(exc: Exception) -> InventoryError:
    """SQLAlchemy / ドライバの例外をドメインの例外に変換する。"""
    if isinstance(exc, InventoryError):
        return exc
    if isinstance(exc, (OperationalError, InterfaceError, OSError)):
        return StoreUnavailable(str(exc))
    return StoreQueryFailed(str(exc))


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    1リクエスト分のセッション。

    ストア由来の例外は StoreUnavailable / StoreQueryFailed に変換して送出する。
    リトライはしない。
    """
    try:
        async with get_session_factory()() as session:
            yield session
    except (SQLAlchemyError, OSError) as e:
        logger.error("Store operation failed: %s", e)
        raise translate_store_error(e) from e
