from .items import (
  Role,
  ToolStatus,
  ImageDetail,
  TextPart,
  ImagePart,
  ContentPart,
  Message,
  ToolCall,
  ToolResult,
  ReasoningNote,
  ConversationItem,
)
from .context import Context, WorkingCopy
from .store import Channel, ContextStore
