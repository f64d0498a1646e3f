# logging_config.py
import logging
import logging.config
import logging.handlers
from pathlib import Path
from datetime import datetime
import json
import contextvars

# 요청 단위 식별자(ContextVar로 보관)
_request_id_ctx = contextvars.ContextVar("request_id", default="-")

class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get("-")
        return True

def set_request_id(req_id: str):
    _request_id_ctx.set(req_id)

def get_logger(name: str = __name__) -> logging.Logger:
    return logging.getLogger(name)

# 로그 디렉터리
LOG_DIR = Path("logs")

def build_dict_config(json_fmt: bool = False, log_dir: Path = LOG_DIR) -> dict:
    fmt = (
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s",'
        '"request_id":"%(request_id)s","msg":"%(message)s"}'
        if json_fmt
        else '%(asctime)s | %(levelname)s | %(name)s | rid=%(request_id)s | %(message)s'
    )

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": fmt,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "INFO",
                "formatter": "default",
                "filters": ["request_id"],
            },
            "file_app": {
                "class": "logging.handlers.TimedRotatingFileHandler",
                "level": "INFO",
                "formatter": "default",
                "filters": ["request_id"],
                "filename": str(log_dir / "app.log"),
                "when": "midnight",
                "interval": 1,
                "backupCount": 30,
                "encoding": "utf-8",
            },
            "file_search": {
                "class": "logging.handlers.TimedRotatingFileHandler",
                "level": "INFO",
                "formatter": "default",
                "filters": ["request_id"],
                "filename": str(log_dir / "search.log"),
                "when": "midnight",
                "interval": 1,
                "backupCount": 30,
                "encoding": "utf-8",
            },
        },
        "loggers": {
            # 루트 로거: 앱 전반
            "": {
                "level": "INFO",
                "handlers": ["console", "file_app"],
            },
            # 검색(임베딩/폴백) 전용 로거
            "search": {
                "level": "INFO",
                "handlers": ["console", "file_search"],
                "propagate": False,
            },
            # uvicorn 로거 레벨 통일
            "uvicorn": {"level": "INFO"},
            "uvicorn.error": {"level": "INFO"},
            "uvicorn.access": {"level": "INFO"},
        },
    }

def setup_logging(json_fmt: bool = False, log_dir: Path = LOG_DIR):
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_dict_config(json_fmt=json_fmt, log_dir=log_dir))

# ===== 검색 보조 함수들 =====
def log_search_event(event_type: str, details: dict, logger: logging.Logger | None = None):
    logger = logger or get_logger("search")
    logger.info("SEARCH_EVENT: %s", json.dumps({
        "timestamp": datetime.now().isoformat(),
        "event_type": event_type,
        "details": details
    }, ensure_ascii=False, default=str))

def log_embedding_batch(batch_index: int, size: int, success: bool,
                        error: str | None = None,
                        logger: logging.Logger | None = None):
    logger = logger or get_logger("search")
    if success:
        logger.info("embedding batch ok: index=%s size=%s", batch_index, size)
    else:
        logger.warning("embedding batch failed: index=%s size=%s err=%s", batch_index, size, error)
