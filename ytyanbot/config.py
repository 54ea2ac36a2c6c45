"""Bot configuration loaded from YAML, plus shared service clients and loggers."""

from __future__ import annotations

import functools
import gzip
import json
import logging
import logging.handlers
import os
import shutil
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .azure import Moderator, Ocr

__all__ = [
    "CONFIG_ENV",
    "LOG_FILE_ENV",
    "NO_STDOUT_ENV",
    "AzureConfig",
    "OcrConfig",
    "MeiliConfig",
    "SeseThreshold",
    "Config",
    "load_config",
    "get_config",
    "get_ocr",
    "get_moderator",
    "get_logger",
]

CONFIG_ENV = "GOYTYAN_CONFIG"
LOG_FILE_ENV = "GOYTYAN_LOG_FILE"
NO_STDOUT_ENV = "GOYTYAN_NO_STDOUT"

_LOGGER_PREFIX = "ytyanbot"
_LOG_MAX_BYTES = 1024 * 1024
_LOG_BACKUPS = 10


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _int(data: Mapping[str, Any], key: str) -> int:
    return int(data.get(key) or 0)


def _float(data: Mapping[str, Any], key: str) -> float:
    return float(data.get(key) or 0)


def _bool(data: Mapping[str, Any], key: str) -> bool:
    return bool(data.get(key) or False)


def _endpoint_and_credential(data: Mapping[str, Any]) -> Tuple[str, str]:
    """The endpoint and the subscription credential of an Azure section."""
    return _str(data, "endpoint"), _str(data, "api-key")


@dataclass
class AzureConfig:
    endpoint: str = ""
    api_key: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AzureConfig":
        endpoint, api_key = _endpoint_and_credential(data)
        return cls(endpoint=endpoint, api_key=api_key)


@dataclass
class OcrConfig(AzureConfig):
    api_ver: str = ""
    language: str = ""
    features: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "OcrConfig":
        endpoint, api_key = _endpoint_and_credential(data)
        return cls(
            endpoint=endpoint,
            api_key=api_key,
            api_ver=_str(data, "api-ver"),
            language=_str(data, "language"),
            features=_str(data, "features"),
        )


@dataclass
class MeiliConfig:
    base_url: str = ""
    index_name: str = ""
    primary_key: str = ""
    master_key: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MeiliConfig":
        return cls(
            base_url=_str(data, "base-url"),
            index_name=_str(data, "index-name"),
            primary_key=_str(data, "primary-key"),
            master_key=_str(data, "master-key"),
        )

    def save_url(self) -> str:
        """URL for adding documents to the index."""
        return (
            f"{self.base_url}/indexes/{self.index_name}/documents"
            f"?primaryKey={self.primary_key}"
        )

    def search_url(self) -> str:
        """URL for searching the index."""
        return f"{self.base_url}/indexes/{self.index_name}/search"


@dataclass
class SeseThreshold:
    adult_threshold: float = 0.0
    racy_threshold: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SeseThreshold":
        return cls(
            adult_threshold=_float(data, "adult-threshold"),
            racy_threshold=_float(data, "racy-threshold"),
        )


@dataclass
class Config:
    bot_token: str = ""
    god: int = 0
    meili_config: MeiliConfig = field(default_factory=MeiliConfig)
    content_moderator: AzureConfig = field(default_factory=AzureConfig)
    ocr: OcrConfig = field(default_factory=OcrConfig)
    qr_scan_url: str = ""
    save_message: bool = False
    tg_api_url: str = ""
    drop_pending_updates: bool = False
    sese_threshold: SeseThreshold = field(default_factory=SeseThreshold)
    log_level: int = 0
    local_kv_db_path: str = ""
    tmp_path: str = ""
    database_path: str = ""
    gemini_key: str = ""

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Config":
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("configuration must be a mapping")
        return cls(
            bot_token=_str(data, "bot-token"),
            god=_int(data, "god"),
            meili_config=MeiliConfig.from_mapping(_section(data, "meili-config")),
            content_moderator=AzureConfig.from_mapping(
                _section(data, "content-moderator")
            ),
            ocr=OcrConfig.from_mapping(_section(data, "ocr")),
            qr_scan_url=_str(data, "qr-scan-url"),
            save_message=_bool(data, "save-message"),
            tg_api_url=_str(data, "tg-api-url"),
            drop_pending_updates=_bool(data, "drop-pending-updates"),
            sese_threshold=SeseThreshold.from_mapping(_section(data, "sese")),
            log_level=_int(data, "log-level"),
            local_kv_db_path=_str(data, "local-kv-db-path"),
            tmp_path=_str(data, "tmp-path"),
            database_path=_str(data, "database-path"),
            gemini_key=_str(data, "gemini-key"),
        )


def load_config(path: str) -> Config:
    """Read a YAML configuration file."""
    with open(path, encoding="utf-8") as fh:
        return Config.from_mapping(yaml.safe_load(fh))


@dataclass(frozen=True)
class _Globals:
    config: Config
    ocr: Optional[Ocr]
    moderator: Optional[Moderator]


@functools.lru_cache(maxsize=None)
def _load_global() -> _Globals:
    if CONFIG_ENV not in os.environ:
        return _Globals(Config(), None, None)
    cfg = load_config(os.environ[CONFIG_ENV])
    ocr = Ocr(
        cfg.ocr.endpoint,
        cfg.ocr.api_key,
        api_ver=cfg.ocr.api_ver,
        language=cfg.ocr.language,
        features=cfg.ocr.features,
    )
    moderator = Moderator(cfg.content_moderator.endpoint, cfg.content_moderator.api_key)
    return _Globals(cfg, ocr, moderator)


def get_config() -> Config:
    """The process-wide configuration, read once from the file named by GOYTYAN_CONFIG."""
    return _load_global().config


def get_ocr() -> Optional[Ocr]:
    """The OCR client built from the configuration, or None without a config file."""
    return _load_global().ocr


def get_moderator() -> Optional[Moderator]:
    """The moderation client built from the configuration, or None without a config file."""
    return _load_global().moderator


_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


def _python_level(level: int) -> int:
    if level <= -1:
        return logging.DEBUG
    if level == 0:
        return logging.INFO
    if level == 1:
        return logging.WARNING
    if level == 2:
        return logging.ERROR
    return logging.CRITICAL


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
            "ts": record.created,
            "msg": record.getMessage(),
            "name": record.name.partition(".")[2] or record.name,
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _gz_namer(name: str) -> str:
    return name + ".gz"


def _gz_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


@functools.lru_cache(maxsize=None)
def _handlers() -> Tuple[logging.Handler, ...]:
    handlers: list = []
    if LOG_FILE_ENV not in os.environ:
        handlers.append(logging.StreamHandler(sys.stderr))
    else:
        rotating = logging.handlers.RotatingFileHandler(
            os.environ[LOG_FILE_ENV],
            maxBytes=_LOG_MAX_BYTES,
            backupCount=_LOG_BACKUPS,
            encoding="utf-8",
        )
        rotating.namer = _gz_namer
        rotating.rotator = _gz_rotator
        handlers.append(rotating)
        if NO_STDOUT_ENV not in os.environ:
            handlers.append(logging.StreamHandler(sys.stdout))
    formatter = _JsonFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
    return tuple(handlers)


_loggers: Dict[str, logging.Logger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """A JSON logger tagged with ``name``, at the level set in the configuration."""
    with _loggers_lock:
        logger = _loggers.get(name)
        if logger is not None:
            return logger
        logger = logging.getLogger(f"{_LOGGER_PREFIX}.{name}")
        logger.setLevel(_python_level(get_config().log_level))
        logger.propagate = False
        for handler in _handlers():
            logger.addHandler(handler)
        _loggers[name] = logger
        return logger