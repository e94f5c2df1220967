"""
Runtime configuration.

Settings are read once at startup from environment variables and are
read-only afterwards. ``Settings()`` gives the defaults, which is what tests
use.

Environment Variables:
- OPENAI_API_KEY / OPENAI_BASE_URL: streaming (Responses API) provider
- GEMINI_API_KEY / GEMINI_BASE_URL: single-shot (generateContent) provider
- OBSERVER_SYSTEM_PROMPT: default system instruction for every channel
- OBSERVER_CONTEXT_CAPACITY: items kept per channel (default: 2000)
- OBSERVER_MAX_STEPS: provider invocations per model attempt (default: 5)
- OBSERVER_MAX_OUTPUT_TOKENS: output cap per request (default: 2000)
- OBSERVER_TURN_TIMEOUT: deadline for one turn in seconds (default: 180)
- OBSERVER_RATE_WINDOW_SIZE: burst allowance in seconds (default: 16200)
- OBSERVER_RATE_COST_PER_UNIT: seconds of debt per model cost unit (default: 900)
- OBSERVER_PROGRESS_INTERVAL: minimum seconds between progress updates (default: 1.0)
- OBSERVER_HEARTBEAT_INTERVAL: typing indicator cadence in seconds (default: 4.0)
- OBSERVER_DEFAULT_MODEL: model for new users, "auto" allowed (default: gpt-5-mini)
- OBSERVER_DISABLED_TOOLS: comma-separated tool names that are not advertised
- OBSERVER_ADMIN_USERS: comma-separated user ids allowed to adjust rate lines
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

DEFAULT_SYSTEM_PROMPT = """The messages above are a conversation in a chat channel.
You are the bot "Observer"; continue the conversation naturally.
Check sources and recency for knowledge topics, never invent facts, and ask when unsure.
Organize information logically and use tools to investigate when needed.
Tool results are invisible to the other participants, so always write the content out.
Keep "!" and emoji to a minimum and avoid lengthy explanations.
If a single word is enough, answer with a single word.
Mirror the tone of the people around you and keep the tempo brisk."""


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
  value = env.get(name)
  if value is None or value.strip() == "":
    return default
  try:
    return int(value)
  except ValueError:
    raise ValueError(f"{name} must be an integer, got {value!r}")


def _read_float(env: Mapping[str, str], name: str, default: float) -> float:
  value = env.get(name)
  if value is None or value.strip() == "":
    return default
  try:
    return float(value)
  except ValueError:
    raise ValueError(f"{name} must be a number, got {value!r}")


def _read_list(env: Mapping[str, str], name: str) -> frozenset[str]:
  value = env.get(name, "")
  return frozenset(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
  openai_api_key: Optional[str] = None
  openai_base_url: str = DEFAULT_OPENAI_BASE_URL
  gemini_api_key: Optional[str] = None
  gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
  system_prompt: str = DEFAULT_SYSTEM_PROMPT
  context_capacity: int = 2000
  max_steps: int = 5
  max_output_tokens: int = 2000
  turn_timeout: float = 180.0
  rate_window_size: int = 16200
  rate_cost_per_unit: int = 900
  progress_interval: float = 1.0
  heartbeat_interval: float = 4.0
  default_model: str = "gpt-5-mini"
  disabled_tools: frozenset[str] = field(default_factory=frozenset)
  admin_users: frozenset[str] = field(default_factory=frozenset)

  def __post_init__(self):
    if self.context_capacity < 1:
      raise ValueError("context_capacity must be at least 1")
    if self.max_steps < 1:
      raise ValueError("max_steps must be at least 1")
    if self.rate_window_size < 0 or self.rate_cost_per_unit < 0:
      raise ValueError("rate limiter constants must not be negative")

  @classmethod
  def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
    """
    Build settings from environment variables.

    :param env: Mapping to read from (default: os.environ)
    :return: Settings instance
    :raises ValueError: If a numeric variable cannot be parsed
    """
    env = os.environ if env is None else env
    return cls(
      openai_api_key=env.get("OPENAI_API_KEY") or None,
      openai_base_url=env.get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL).rstrip("/"),
      gemini_api_key=env.get("GEMINI_API_KEY") or None,
      gemini_base_url=env.get("GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL).rstrip("/"),
      system_prompt=env.get("OBSERVER_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
      context_capacity=_read_int(env, "OBSERVER_CONTEXT_CAPACITY", 2000),
      max_steps=_read_int(env, "OBSERVER_MAX_STEPS", 5),
      max_output_tokens=_read_int(env, "OBSERVER_MAX_OUTPUT_TOKENS", 2000),
      turn_timeout=_read_float(env, "OBSERVER_TURN_TIMEOUT", 180.0),
      rate_window_size=_read_int(env, "OBSERVER_RATE_WINDOW_SIZE", 16200),
      rate_cost_per_unit=_read_int(env, "OBSERVER_RATE_COST_PER_UNIT", 900),
      progress_interval=_read_float(env, "OBSERVER_PROGRESS_INTERVAL", 1.0),
      heartbeat_interval=_read_float(env, "OBSERVER_HEARTBEAT_INTERVAL", 4.0),
      default_model=env.get("OBSERVER_DEFAULT_MODEL") or "gpt-5-mini",
      disabled_tools=_read_list(env, "OBSERVER_DISABLED_TOOLS"),
      admin_users=_read_list(env, "OBSERVER_ADMIN_USERS"),
    )
