import re

from colorlog import ColoredFormatter
from datetime import datetime, UTC

# Query-string keys and bearer tokens, as they appear in provider URLs and errors
SECRET_PATTERNS = [
  re.compile(r"((?:[?&]|\b)(?:key|api_key|access_token)=)[^&\s'\"]+", re.IGNORECASE),
  re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"),
  re.compile(r"()\bsk-[A-Za-z0-9_\-]{8,}"),
]


def mask_secrets(text: str) -> str:
  """Replace credentials in a log line with ``***``."""
  for pattern in SECRET_PATTERNS:
    text = pattern.sub(r"\1***", text)
  return text


class Formatter(ColoredFormatter):
  """
  Colored single-line records with UTC timestamps.

  Logger names are dimmed, ``WARNING`` is shortened to ``WARN`` so the level
  column stays five characters wide, and credentials are masked in the
  rendered line.
  """

  DIM = "\033[38;5;245m"
  RESET = "\033[0m"

  def __init__(self, *args, **kwargs):
    kwargs.setdefault("datefmt", "%Y-%m-%dT%H:%M:%S.%fZ")
    super().__init__(*args, **kwargs)

  def format(self, record) -> str:
    if record.levelname == "WARNING":
      record.levelname = "WARN"
    return mask_secrets(super().format(record))

  def formatTime(self, record, datefmt=None) -> str:
    try:
      return datetime.fromtimestamp(record.created, UTC).strftime(datefmt or self.datefmt)
    except (OverflowError, OSError, ValueError):
      return f"{record.created}"

  def formatMessage(self, record) -> str:
    record.name = f"{self.DIM}{record.name}{self.RESET}"
    record.asctime = f"{self.DIM}{self.formatTime(record, self.datefmt)}{self.RESET}"
    return super().formatMessage(record)
