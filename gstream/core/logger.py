"""
Structured logging for the G-code streamer.

Prefixes:
  ⚡ CRITICAL - Timeouts, aborted runs
  ⚠️  WARN     - Resend requests, skipped tokens
  ✓  OK       - Success confirmations
  ⬡  SERIAL   - Raw serial I/O (debug only)
  ▶  PROGRESS - Percentage reports
  ⟲  RESET    - Emergency reset
  ↯  FEED     - Feedrate rewrites
"""

from enum import Enum
from typing import Optional
from datetime import datetime


class LogLevel(Enum):
    CRITICAL = "⚡ CRITICAL"
    WARN = "⚠️  WARN    "
    OK = "✓  OK      "
    SERIAL = "⬡  SERIAL  "
    INFO = "ℹ  INFO    "
    PROGRESS = "▶  PROGRESS"
    RESET = "⟲  RESET   "
    FEED = "↯  FEED    "


def log(level: LogLevel, message: str, data: Optional[dict] = None):
    """Log a message with structured prefix."""
    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    prefix = level.value

    line = f"[{timestamp}] {prefix} | {message}"
    if data:
        line += f" | {data}"

    print(line, flush=True)


# Convenience functions
def log_critical(msg: str, data: Optional[dict] = None):
    log(LogLevel.CRITICAL, msg, data)

def log_warn(msg: str, data: Optional[dict] = None):
    log(LogLevel.WARN, msg, data)

def log_ok(msg: str, data: Optional[dict] = None):
    log(LogLevel.OK, msg, data)

def log_info(msg: str, data: Optional[dict] = None):
    log(LogLevel.INFO, msg, data)

def log_serial(direction: str, data: str):
    """Log serial I/O. direction is '>>>' (send) or '<<<' (recv)"""
    log(LogLevel.SERIAL, f"{direction} {data}")

def log_progress(sent: int, total: int):
    percent = sent * 100 // total if total else 100
    log(LogLevel.PROGRESS, f"Progress: {percent}% ({sent}/{total})")

def log_reset(msg: str, data: Optional[dict] = None):
    log(LogLevel.RESET, msg, data)

def log_feed(old: str, new: str):
    log(LogLevel.FEED, f"Feedrate {old} → {new}")
