from .agents import (
  Attachment,
  InboundMessage,
  ObserverRuntime,
  Orchestrator,
  TurnResult,
  ProgressThrottle,
  Heartbeat,
)
from .config import Settings
from .context import (
  Context,
  ContextStore,
  ImagePart,
  Message,
  ReasoningNote,
  Role,
  TextPart,
  ToolCall,
  ToolResult,
  ToolStatus,
  WorkingCopy,
)
from .errors import (
  ObserverError,
  ProviderError,
  ProtocolError,
  ProviderRequestError,
  NetworkError,
  ToolNotFound,
  ToolExecutionError,
  ModelsExhausted,
  RateLimitExceeded,
  ChannelDisabled,
  TurnTimeoutError,
)
from .logs import (
  set_log_levels,
  get_logger,
  InfoContext,
  DebugContext,
)
from .models import ModelCandidate, Capabilities, ProtocolFamily, CATALOG, AUTO_CANDIDATES
from .tools import InvokableTool, Tool, ToolContext, ToolOutcome, ToolRegistry
from .users import RateLimiter, UserProfile, UserRegistry
