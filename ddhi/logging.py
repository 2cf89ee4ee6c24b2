"""Package logging.

Modules obtain a logger with ``logger = setup_logging()`` and may pass
structured payloads (dicts, lists, pydantic models) instead of strings;
they are rendered readably before reaching the standard library handlers.
"""

import inspect
import logging
import os
from pprint import pformat
from typing import Any

from pydantic import BaseModel

LOG_FORMAT = "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"
LEVEL_ENV_VAR = "DDHI_LOG_LEVEL"


def _render(msg: Any, pprint: bool) -> str:
    if isinstance(msg, str) or not pprint:
        return str(msg)
    if isinstance(msg, BaseModel):
        return msg.model_dump_json(indent=2, exclude_none=True)
    return pformat(msg, width=100, sort_dicts=False)


class PprintLogger:
    """Wraps a `logging.Logger`, pretty-printing structured messages.

    ``pprint=False`` falls back to plain ``str()`` conversion. Every other
    attribute is delegated to the wrapped logger.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _emit(self, level: int, msg: Any, args: tuple, pprint: bool, kwargs: dict) -> None:
        if not self._logger.isEnabledFor(level):
            return
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, _render(msg, pprint), *args, **kwargs)

    def debug(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._emit(logging.DEBUG, msg, args, pprint, kwargs)

    def info(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._emit(logging.INFO, msg, args, pprint, kwargs)

    def warning(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._emit(logging.WARNING, msg, args, pprint, kwargs)

    def error(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._emit(logging.ERROR, msg, args, pprint, kwargs)

    def critical(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._emit(logging.CRITICAL, msg, args, pprint, kwargs)

    def exception(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self._emit(logging.ERROR, msg, args, pprint, kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._logger, name)


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get(LEVEL_ENV_VAR, "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(name: str | None = None, level: int | str | None = None) -> PprintLogger:
    """Return a `PprintLogger` for the calling module.

    Args:
        name: Logger name. Defaults to the ``__name__`` of the calling module.
        level: Level as an int or name. Defaults to ``$DDHI_LOG_LEVEL`` or INFO.
    """
    if name is None:
        frame = inspect.currentframe().f_back  # type: ignore[union-attr]
        name = frame.f_globals.get("__name__", "ddhi")  # type: ignore[union-attr]
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return PprintLogger(logger)


def set_package_level(level: int | str | None, package: str = "ddhi") -> int:
    """Set the level of ``package`` and every logger below it. Returns the level applied."""
    resolved = _resolve_level(level)
    names = [n for n in logging.root.manager.loggerDict if n == package or n.startswith(package + ".")]
    for name in [package, *names]:
        logging.getLogger(name).setLevel(resolved)
    return resolved
