"""
검색 계층 설정

환경 변수(.env 포함)에서 Elasticsearch / PostgreSQL 연결 정보를 읽습니다.
프로세스 시작 시 한 번만 읽으며, 변경하려면 재시작이 필요합니다.
"""

import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


@dataclass(frozen=True)
class ESConfig:
    """Elasticsearch 연결 설정"""
    enabled: bool = False
    nodes: Tuple[str, ...] = ("http://localhost:9200",)
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    tls: bool = False
    ca_certs: Optional[str] = None
    verify_certs: bool = True
    max_retries: int = 3
    request_timeout: float = 30.0
    ping_timeout: float = 3.0
    call_timeout: float = 60.0
    sniff_on_start: bool = False

    @classmethod
    def from_env(cls) -> "ESConfig":
        """환경 변수에서 설정 생성"""
        raw_nodes = os.getenv("ELASTICSEARCH_NODES", "http://localhost:9200")
        nodes = tuple(n.strip() for n in raw_nodes.split(",") if n.strip())

        return cls(
            enabled=_env_bool("ELASTICSEARCH_ENABLED", False),
            nodes=nodes or ("http://localhost:9200",),
            username=os.getenv("ELASTICSEARCH_USERNAME") or None,
            password=os.getenv("ELASTICSEARCH_PASSWORD") or None,
            api_key=os.getenv("ELASTICSEARCH_API_KEY") or None,
            tls=_env_bool("ELASTICSEARCH_TLS", False),
            ca_certs=os.getenv("ELASTICSEARCH_CA") or None,
            verify_certs=_env_bool("ELASTICSEARCH_VERIFY_CERTS", True),
            max_retries=_env_int("ELASTICSEARCH_MAX_RETRIES", 3),
            request_timeout=_env_float("ELASTICSEARCH_REQUEST_TIMEOUT", 30.0),
            ping_timeout=_env_float("ELASTICSEARCH_PING_TIMEOUT", 3.0),
            call_timeout=_env_float("ELASTICSEARCH_CALL_TIMEOUT", 60.0),
            sniff_on_start=_env_bool("ELASTICSEARCH_SNIFF_ON_START", False),
        )

    @property
    def hosts(self) -> List[str]:
        """TLS 설정이 켜져 있으면 http:// 노드를 https:// 로 변환"""
        if not self.tls:
            return list(self.nodes)
        return [
            "https://" + n[len("http://"):] if n.startswith("http://") else n
            for n in self.nodes
        ]


@dataclass(frozen=True)
class DBConfig:
    """PostgreSQL 연결 설정"""
    host: str = "localhost"
    port: int = 5432
    database: str = "vet_clinic"
    user: str = "postgres"
    password: str = "postgres"
    min_size: int = 2
    max_size: int = 10

    @classmethod
    def from_env(cls) -> "DBConfig":
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=_env_int("DB_PORT", 5432),
            database=os.getenv("DB_NAME", "vet_clinic"),
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD", "postgres"),
            min_size=_env_int("DB_POOL_MIN", 2),
            max_size=_env_int("DB_POOL_MAX", 10),
        )

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class Settings:
    """검색 계층 전체 설정"""
    es: ESConfig = field(default_factory=ESConfig)
    db: DBConfig = field(default_factory=DBConfig)
    admin_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            es=ESConfig.from_env(),
            db=DBConfig.from_env(),
            admin_api_key=os.getenv("SEARCH_ADMIN_API_KEY") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """프로세스 전역 설정 (최초 호출 시 한 번만 읽음)"""
    return Settings.from_env()


def get_es_config() -> ESConfig:
    return get_settings().es
