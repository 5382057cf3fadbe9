"""测试夹具：为 pytest 提供数据库、存储目录与客户端的共享配置。"""

import os
import shutil
import tempfile
from typing import Callable, Generator

# 必须在导入应用之前设置，配置对象与数据库引擎会在导入时被缓存
_TMP_ROOT = tempfile.mkdtemp(prefix="knohub_tests_")
TEST_DB_PATH = os.path.join(_TMP_ROOT, "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_ROOT, "uploads")
os.environ["PREVIEW_DIR"] = os.path.join(_TMP_ROOT, "previews")
os.environ["LOG_DIR"] = os.path.join(_TMP_ROOT, "log")
os.environ["STORAGE_TYPE"] = "LOCAL"
os.environ["VISITOR_STORE"] = "memory"
os.environ["LOGISIM_ENABLED"] = "false"
os.environ.setdefault("APP_ACTIVE_PACKAGE", "knohub")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.main import app
from app.packages.knohub.core.dependencies import get_db
from app.packages.knohub.core.timezone import today
from app.packages.knohub.crud.resource import resource_crud
from app.packages.knohub.db import session as db_session
from app.packages.knohub.db.init_db import init_db
from app.packages.knohub.models.base import Base
from app.packages.knohub.models.resource import Resource
from app.packages.knohub.services.file_service import FileService
from app.packages.knohub.services.storage_backends import LocalBackend


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    init_db()
    yield

    engine.dispose()
    shutil.rmtree(_TMP_ROOT, ignore_errors=True)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_resource(db_session_fixture: Session) -> Callable[..., Resource]:
    """直接写库创建资源，返回已提交的记录。"""

    def _make(title: str = "数字电路", resource_type: str = "course", description: str | None = None) -> Resource:
        resource = resource_crud.create(
            db_session_fixture,
            {"type": resource_type, "title": title, "description": description, "update_date": today()},
            auto_commit=True,
        )
        return resource

    return _make


@pytest.fixture()
def storage_root(tmp_path) -> str:
    return str(tmp_path / "blobs")


@pytest.fixture()
def engine_service(storage_root: str) -> FileService:
    """绑定到独立本地目录的文件树服务，避免用例之间共享物理文件。"""
    return FileService(storage=LocalBackend(storage_root))


@pytest.fixture()
def client(db_session_fixture):
    """构建 FastAPI TestClient，并注入测试专用的数据库依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
