"""Настройка логирования.

Файлы логов хранятся в директории ``log_dir`` (по умолчанию ``data/logs``
относительно CWD), ротация через TimedRotatingFileHandler.

- Ротация: ежедневно (midnight).
- Хранение: log_retention_days (по умолчанию 30).
- Уровень: log_level (по умолчанию INFO).
"""
from __future__ import annotations

import glob
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_FILE = "dirauth.log"

# Отслеживаем установленные handlers, чтобы при реконфигурации удалять старые.
_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def setup_logging(
    level: str = "INFO",
    retention_days: int = 30,
    log_dir: str = "data/logs",
    *,
    to_file: bool = True,
) -> None:
    """Настраивает корневой логгер.

    - Файловый handler: ротация по дате.
    - Консольный handler: для docker logs / stdout.
    """
    global _file_handler, _console_handler

    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    log_level = getattr(logging, level_str, logging.INFO)
    retention_days = max(1, min(365, int(retention_days or 30)))

    root = logging.getLogger()
    for h in (_file_handler, _console_handler):
        if h is not None and h in root.handlers:
            root.removeHandler(h)
            h.close()
    _file_handler = None

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    if to_file:
        log_dir = os.path.abspath(log_dir or "data/logs")
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, _LOG_FILE),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            utc=True,
        )
        fh.suffix = "%Y-%m-%d"
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)
        _file_handler = fh
        _cleanup_old_logs(log_dir, retention_days)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)
    _console_handler = ch

    root.setLevel(log_level)

    # Протокольный лог ldap3 слишком подробный для INFO
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))
    logging.getLogger("uvicorn.access").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("dirauth").info(
        "Логирование настроено: уровень=%s, хранение=%d дней", level_str, retention_days,
    )


def _cleanup_old_logs(log_dir: str, retention_days: int) -> None:
    """Удаляет файлы логов старше retention_days."""
    cutoff = time.time() - (retention_days * 86400)
    for f in glob.glob(os.path.join(log_dir, _LOG_FILE + ".*")):
        try:
            if os.path.getmtime(f) < cutoff:
                os.remove(f)
        except OSError:
            continue
