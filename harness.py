#!/usr/bin/env python3
"""Shared plumbing for the memory diagnostic scripts: config, logging, pacing."""
import logging
import os
import sys
import threading

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


class ConfigError(Exception):
    pass


def load_config():
    """Load variables from a .env file into the environment"""
    load_dotenv(override=True)


def env_int(name, default):
    """Read an integer setting from the environment, falling back to default."""
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def setup_logging(level=None):
    # stdout carries the reports, so diagnostics go to stderr
    level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got {level!r}")
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )


def allocate_block(nbytes: int) -> bytearray:
    """
    Allocate nbytes filled with a non-zero byte.

    A zeroed bytearray may be backed by untouched pages that never show up in
    the resident set, so the fill makes the block count. MemoryError is left
    to the caller.
    """
    return bytearray(b"\x01") * nbytes


class Pacer:
    """Blocking delay between iterations that can be cut short with cancel()."""

    def __init__(self):
        self._cancelled = threading.Event()

    def wait(self, seconds: float) -> bool:
        """Sleep for seconds. Returns True when the wait was cancelled."""
        if seconds <= 0:
            return self._cancelled.is_set()
        return self._cancelled.wait(seconds)

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()
