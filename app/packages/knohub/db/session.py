"""Database engine and session factory configuration."""

from contextlib import contextmanager
from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.packages.knohub.core.config import get_settings

settings = get_settings()


def build_engine(url: str, *, echo: bool = False):
    """按连接串创建引擎；SQLite 需要放开跨线程访问以配合 FastAPI 的线程池。"""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)


# ``pool_pre_ping`` keeps the connection pool healthy; ``echo`` mirrors SQL logs
# when enabled in settings for easier debugging.
engine = build_engine(settings.sql_database_url, echo=settings.database_echo)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """将一次业务操作包裹为单个事务：正常结束提交，任何异常回滚后继续抛出。

    允许嵌套：内层只参与外层事务，由最外层负责提交或回滚。
    """
    depth = db.info.get("uow_depth", 0)
    db.info["uow_depth"] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except Exception:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info["uow_depth"] = depth
