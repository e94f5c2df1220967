from .model import (
  AUTO,
  AUTO_CANDIDATES,
  CATALOG,
  Capabilities,
  ModelCandidate,
  ProtocolFamily,
  lookup,
  model_names,
  resolve_candidates,
)
from .events import (
  NormalizedEvent,
  StatusUpdate,
  Terminal,
  TerminalStatus,
  TextDelta,
  ToolCallRequested,
  ToolChoice,
  ToolChoiceMode,
)
