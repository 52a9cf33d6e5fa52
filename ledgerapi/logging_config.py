import logging.config
import sys


def setup_logging(log_level: str = "INFO"):
    log_level = log_level.upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "simple": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s",
                },
                "detailed": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)s\n%(pathname)s:%(lineno)d\n%(message)s",
                },
            },
            "handlers": {
                "console": {
                    "formatter": "simple",
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                },
                "error_console": {
                    "formatter": "detailed",
                    "class": "logging.StreamHandler",
                    "stream": sys.stderr,
                    "level": "ERROR",
                },
            },
            "loggers": {
                "": {"handlers": ["console"], "level": log_level},
                "uvicorn.error": {"handlers": ["console"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["console"], "level": "WARNING", "propagate": False},
                "sqlalchemy.engine": {"handlers": ["console"], "level": "WARNING", "propagate": False},
                # 서비스/리포지토리 모듈 로거(ledgerapi.*) 포함
                "ledgerapi": {
                    "handlers": ["console", "error_console"],
                    "level": log_level,
                    "propagate": False,
                },
            },
        }
    )
