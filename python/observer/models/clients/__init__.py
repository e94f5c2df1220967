from typing import Optional

from ...config import Settings
from ..model import ModelCandidate, ProtocolFamily
from .protocol import ProviderAdapter, DeltaCallback, visible_content
from .responses_client import ResponsesClient
from .gemini_client import GeminiClient
from .shared_clients import close_shared_clients, reset_shared_clients


def create_adapter(candidate: ModelCandidate, settings: Settings) -> ProviderAdapter:
  """
  Create the adapter for a candidate's protocol family.

  :raises ValueError: If the protocol family has no adapter
  """
  match candidate.capabilities.protocol_family:
    case ProtocolFamily.STREAMING:
      return ResponsesClient(candidate, settings)
    case ProtocolFamily.SINGLE_SHOT:
      return GeminiClient(candidate, settings)
  raise ValueError(f"No adapter for protocol family {candidate.capabilities.protocol_family}")


__all__ = [
  "ProviderAdapter",
  "DeltaCallback",
  "visible_content",
  "ResponsesClient",
  "GeminiClient",
  "create_adapter",
  "close_shared_clients",
  "reset_shared_clients",
]
