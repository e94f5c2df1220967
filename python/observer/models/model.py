from dataclasses import dataclass
from enum import Enum
from typing import Optional

AUTO = "auto"


class ProtocolFamily(Enum):
  STREAMING = "streaming"
  SINGLE_SHOT = "single_shot"


@dataclass(frozen=True)
class Capabilities:
  supports_tools: bool = True
  supports_vision: bool = True
  protocol_family: ProtocolFamily = ProtocolFamily.STREAMING


@dataclass(frozen=True)
class ModelCandidate:
  """
  A model the runtime can call.

  :param name: Provider model id
  :param cost_units: Relative expense, multiplied by the per-unit cost in the rate limiter
  :param capabilities: What the model and its backend support
  :param reasoning_effort: Reasoning effort requested from reasoning models, if any
  """

  name: str
  cost_units: int
  capabilities: Capabilities = Capabilities()
  reasoning_effort: Optional[str] = None


STREAMING = Capabilities(True, True, ProtocolFamily.STREAMING)
# generateContent only takes inline image bytes, so images go as URL text
SINGLE_SHOT = Capabilities(True, False, ProtocolFamily.SINGLE_SHOT)

CATALOG: dict[str, ModelCandidate] = {
  m.name: m
  for m in [
    ModelCandidate("gpt-5-mini", 1, STREAMING, "low"),
    ModelCandidate("gpt-5-nano", 2, STREAMING, "low"),
    ModelCandidate("gpt-5.1", 6, STREAMING, "low"),
    ModelCandidate("o4-mini", 3, STREAMING, "low"),
    ModelCandidate("o3", 6, STREAMING, "low"),
    ModelCandidate("gpt-5.1-codex-mini", 2, Capabilities(True, False, ProtocolFamily.STREAMING), "low"),
    ModelCandidate("gemini-2.5-flash", 1, SINGLE_SHOT),
    ModelCandidate("gemini-2.5-pro", 4, SINGLE_SHOT),
  ]
}

# Tried in order when a user selects "auto"
AUTO_CANDIDATES = ["gpt-5-mini", "gemini-2.5-flash", "gpt-5-nano"]


def model_names() -> list[str]:
  """Names a user may select, including "auto"."""
  return [AUTO, *CATALOG]


def lookup(name: str) -> ModelCandidate:
  candidate = CATALOG.get(name)
  if candidate is None:
    raise ValueError(f"Unknown model '{name}'. Available: {', '.join(model_names())}")
  return candidate


def resolve_candidates(selected: str, catalog: Optional[dict[str, ModelCandidate]] = None) -> list[ModelCandidate]:
  """
  Turn a user's selection into the ordered list of models to try.

  :param selected: A catalog name or "auto"
  :param catalog: Catalog to resolve against (default: the built-in one)
  :return: One candidate, or the auto-mode priority list
  """
  catalog = CATALOG if catalog is None else catalog
  if selected == AUTO:
    return [catalog[name] for name in AUTO_CANDIDATES if name in catalog]
  candidate = catalog.get(selected)
  if candidate is None:
    raise ValueError(f"Unknown model '{selected}'")
  return [candidate]
