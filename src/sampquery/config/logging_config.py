from __future__ import annotations
import logging
import sys

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class BracketLevelFormatter(logging.Formatter):
    """Prefixes records with a lowercase bracketed level tag, e.g. [warn]."""

    _TAGS = {
        logging.DEBUG: "[debug]",
        logging.INFO: "[info]",
        logging.WARNING: "[warn]",
        logging.ERROR: "[error]",
        logging.CRITICAL: "[crit]",
    }

    def format(self, record):
        record.level_tag = self._TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def init_logging(level: str = "info") -> None:
    """
    Install a single stderr handler on the root logger.
    Unknown level names fall back to info.
    """
    root = logging.getLogger()
    root.setLevel(_LEVELS.get(level.lower(), logging.INFO))

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s"))
    root.addHandler(handler)
