from .logs import (
  set_log_levels,
  get_logger,
  InfoContext,
  DebugContext,
)
from .formatter import Formatter, mask_secrets
from logging import Logger

__all__ = [
  "Formatter",
  "mask_secrets",
  "Logger",
  "get_logger",
  "set_log_levels",
  "InfoContext",
  "DebugContext",
]
