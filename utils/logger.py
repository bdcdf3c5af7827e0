from __future__ import annotations
import logging
from logging.handlers import RotatingFileHandler
import os, functools, time
from pathlib import Path

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "1048576"))
_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "3"))
_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"
_MAX_REPR = 240

class _LoggerManager:
    def __init__(self) -> None:
        self._configured = False
        self._file_handlers: dict[str, logging.Handler] = {}
        self._log_dir = os.getenv("LOG_DIR", "./logs")
        self._level = getattr(logging, _DEFAULT_LEVEL, logging.INFO)

    def _ensure(self) -> None:
        if self._configured:
            return

        fmt = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        root = logging.getLogger()
        root.setLevel(self._level)
        if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
                   for h in root.handlers):
            sh = logging.StreamHandler()
            sh.setLevel(self._level); sh.setFormatter(fmt)
            root.addHandler(sh)

        if _TO_FILE:
            Path(self._log_dir).mkdir(parents=True, exist_ok=True)
        self._configured = True

    def setup_logger(self, name: str) -> logging.Logger:
        self._ensure()
        logger = logging.getLogger(name)

        if _TO_FILE and name not in self._file_handlers:
            safe_name = name.replace(".", "_").replace("/", "_")
            file_path = os.path.join(self._log_dir, f"{safe_name}.log")
            try:
                fh = RotatingFileHandler(file_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
            except OSError as e:
                # sin fichero seguimos por consola
                logger.warning(f"No se pudo abrir {file_path}: {e}")
            else:
                fh.setLevel(self._level)
                fh.setFormatter(logging.Formatter(
                    fmt="%(asctime)s | %(levelname)s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S"
                ))
                self._file_handlers[name] = fh
                logger.addHandler(fh)
                logger.propagate = True  # conserva salida a consola

        return logger

logger_manager = _LoggerManager()

def _short(value) -> str:
    text = repr(value)
    return text if len(text) <= _MAX_REPR else text[:_MAX_REPR] + "…"

def log_function(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logger_manager.setup_logger(func.__module__)
        # args[0] suele ser self; no aporta nada a la traza
        shown = args[1:] if args and hasattr(args[0], func.__name__) else args
        logger.debug(f"→ {func.__qualname__} args={_short(shown)} kwargs={_short(kwargs)}")
        t0 = time.time()
        try:
            result = func(*args, **kwargs)
            logger.debug(f"← {func.__qualname__} ({(time.time()-t0)*1000:.1f} ms)")
            return result
        except Exception as e:
            logger.error(f"✗ {func.__qualname__}: {e}")
            raise
    return wrapper
