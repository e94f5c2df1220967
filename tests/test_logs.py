import logging
import os

from observer.logs.formatter import Formatter, mask_secrets
from observer.logs.logs import create_log_levels, create_logging_config, get_logging_config, set_log_levels


class TestLogLevels:
  def test_default_level(self):
    assert create_log_levels(None) == {"default": "INFO"}

  def test_per_logger_levels(self):
    levels = create_log_levels("warning,orchestrator=debug, provider = error")

    assert levels == {"default": "WARNING", "orchestrator": "DEBUG", "provider": "ERROR"}

  def test_config_covers_package_loggers(self):
    config = create_logging_config({"default": "INFO", "rate_limiter": "DEBUG"}, "%(message)s")

    assert config["loggers"]["rate_limiter"]["level"] == "DEBUG"
    assert config["loggers"]["orchestrator"]["level"] == "INFO"
    assert config["loggers"]["httpx"]["level"] == "WARNING"

  def test_set_log_levels_drives_the_active_config(self, monkeypatch):
    monkeypatch.delenv("OBSERVER_LOGGING", raising=False)
    try:
      set_log_levels("debug,provider=error")
      config = get_logging_config()
    finally:
      set_log_levels(os.environ.get("OBSERVER_LOG_LEVELS"))

    assert config["loggers"]["provider"]["level"] == "ERROR"
    assert config["loggers"]["orchestrator"]["level"] == "DEBUG"
    assert config["root"]["level"] == "DEBUG"


class TestFormatter:
  def test_mask_secrets(self):
    line = "POST https://host/v1beta/models/x:generateContent?key=AIzaSecret123&alt=json"

    assert mask_secrets(line) == "POST https://host/v1beta/models/x:generateContent?key=***&alt=json"
    assert mask_secrets("Authorization: Bearer abc.def-ghi") == "Authorization: Bearer ***"
    assert mask_secrets("using sk-proj_abcdefghijkl") == "using ***"
    assert mask_secrets("nothing to hide") == "nothing to hide"

  def test_formatted_record_is_masked_and_shortened(self):
    formatter = Formatter("%(levelname)s %(name)s %(message)s", log_colors={"WARN": "yellow"}, no_color=True)
    record = logging.LogRecord("provider", logging.WARNING, __file__, 1, "retrying with key=abc123", None, None)

    line = formatter.format(record)

    assert line.startswith("WARN ")
    assert "key=***" in line
    assert "abc123" not in line
