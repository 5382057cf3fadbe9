"""配置：.env 文件加载与 ``Settings``（pydantic-settings），进程内单例缓存。"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path:
    """向上查找包含 ``app`` 目录的项目根路径，相对路径配置均以此为基准。"""
    here = Path(__file__).resolve()
    return next((parent for parent in here.parents if (parent / "app").is_dir()), here.parent)


BASE_DIR = _find_project_root()


def _env_files() -> list[Path]:
    """按优先级从低到高返回需要加载的 .env 文件。

    ``ENV_FILE`` 指定时只加载该文件；否则先加载 ``.env``，再叠加
    ``ENVIRONMENT`` 对应的 ``.env.<name>``（DEBUG 打开且未指定时视为 development）。
    """
    override = os.getenv("ENV_FILE")
    if override:
        return [BASE_DIR / override]

    environment = os.getenv("ENVIRONMENT")
    if environment is None and (os.getenv("DEBUG") or "").strip().lower() in {"1", "true", "yes", "on"}:
        environment = "development"

    files = [BASE_DIR / ".env"]
    if environment:
        files.append(BASE_DIR / (environment if environment.startswith(".env") else f".env.{environment}"))
    return files


for _index, _env_file in enumerate(_env_files()):
    if _env_file.is_file():
        # 基础 .env 不覆盖进程环境变量，后续文件覆盖前者
        load_dotenv(_env_file, override=_index > 0 or bool(os.getenv("ENV_FILE")), encoding="utf-8")


class Settings(BaseSettings):
    """KnoHub 运行配置，字段名即环境变量名（见各字段 alias）。"""

    project_name: str = Field(default="KnoHub API", alias="PROJECT_NAME")
    api_prefix: str = Field(default="/api", alias="API_PREFIX")
    debug: bool = Field(default=False, alias="DEBUG")

    # 显式提供 DATABASE_URL 时优先使用（测试环境使用 SQLite）
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    database_host: str = Field(default="localhost", alias="DATABASE_HOST")
    database_port: int = Field(default=5432, alias="DATABASE_PORT")
    database_user: str = Field(default="postgres", alias="DATABASE_USER")
    database_password: str = Field(default="postgres", alias="DATABASE_PASSWORD")
    database_name: str = Field(default="knohub", alias="DATABASE_NAME")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")

    # 物理存储：LOCAL 或 S3
    storage_type: str = Field(default="LOCAL", alias="STORAGE_TYPE")
    upload_dir: str = Field(default="uploads", alias="UPLOAD_DIR")
    s3_region: Optional[str] = Field(default=None, alias="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, alias="S3_BUCKET")
    s3_prefix: Optional[str] = Field(default=None, alias="S3_PREFIX")
    s3_access_key_id: Optional[str] = Field(default=None, alias="S3_ACCESS_KEY_ID")
    s3_secret_access_key: Optional[str] = Field(default=None, alias="S3_SECRET_ACCESS_KEY")
    s3_endpoint_url: Optional[str] = Field(default=None, alias="S3_ENDPOINT_URL")
    max_upload_size_mb: int = Field(default=50, alias="MAX_UPLOAD_SIZE_MB")

    # 预览：.circ 电路图渲染（Logisim）与 .doc 转 HTML（LibreOffice）
    preview_dir: str = Field(default="previews", alias="PREVIEW_DIR")
    logisim_enabled: bool = Field(default=True, alias="LOGISIM_ENABLED")
    logisim_jar_path: Optional[str] = Field(default=None, alias="LOGISIM_JAR_PATH")
    logisim_command_template: Optional[str] = Field(default=None, alias="LOGISIM_COMMAND_TEMPLATE")
    logisim_timeout_seconds: int = Field(default=20, alias="LOGISIM_TIMEOUT_SECONDS")
    logisim_output_format: str = Field(default="png", alias="LOGISIM_OUTPUT_FORMAT")
    soffice_path: str = Field(default="soffice", alias="SOFFICE_PATH")
    soffice_timeout_seconds: int = Field(default=60, alias="SOFFICE_TIMEOUT_SECONDS")

    # 访客统计：memory 或 redis
    visitor_store: str = Field(default="memory", alias="VISITOR_STORE")
    visitor_retention_hours: int = Field(default=24, alias="VISITOR_RETENTION_HOURS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="log", alias="LOG_DIR")
    log_file_name: str = Field(default="app.log", alias="LOG_FILE_NAME")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    app_port: int = Field(default=8080, alias="APP_PORT")
    timezone: str = Field(default="Asia/Shanghai", alias="TIMEZONE")

    model_config = SettingsConfigDict(extra='ignore')

    @property
    def sql_database_url(self) -> str:
        """优先返回 DATABASE_URL，否则根据当前设置拼接 PostgreSQL 连接串。"""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path

    @property
    def upload_directory(self) -> Path:
        return self._resolve_path(self.upload_dir)

    @property
    def preview_directory(self) -> Path:
        return self._resolve_path(self.preview_dir)

    @property
    def max_upload_size_bytes(self) -> int:
        return max(self.max_upload_size_mb, 1) * 1024 * 1024

    @property
    def log_directory(self) -> Path:
        return self._resolve_path(self.log_dir)

    @property
    def log_file_path(self) -> Path:
        return self.log_directory / self.log_file_name

    @property
    def timezone_info(self) -> ZoneInfo:
        """返回当前配置对应的时区信息，无法解析时回退到 UTC。"""
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")


@lru_cache
def get_settings() -> Settings:
    """进程内只解析一次环境变量。"""
    return Settings()
