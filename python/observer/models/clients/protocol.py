from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, Sequence

from ...context.context import WorkingCopy
from ...context.items import ContentPart, Message, TextPart
from ...tools.protocol import InvokableTool
from ..events import NormalizedEvent, ToolChoice
from ..model import ModelCandidate

DeltaCallback = Callable[[str], Awaitable[None]]


def visible_content(message: Message, supports_vision: bool) -> list[ContentPart]:
  """
  Content parts a model can take, with images turned into ``[image] <url>`` text
  when it cannot see them.
  """
  if supports_vision or not message.images:
    return list(message.content)
  return [TextPart(message.text_with_image_placeholders())]


class ProviderAdapter(Protocol):
  """
  One model backend behind the normalized event interface.

  ``run`` reads ``working.items`` each time it sends a request. When it yields
  a ``ToolCallRequested`` the consumer must append the ToolCall and its
  ToolResult to the working copy before pulling the next event; a backend
  without server-side continuation relies on that to build its next request.

  The last event of a run is a ``Terminal``. A backend-reported failure ends
  the run with ``Terminal(FAILED | INCOMPLETE, reason)``; transport problems
  and malformed responses raise ``ProviderError`` subclasses instead.
  ``ProviderRequestError`` is raised only when the backend rejects the request
  before any event was produced.
  """

  candidate: ModelCandidate

  def run(
    self,
    working: WorkingCopy,
    tools: Sequence[InvokableTool],
    tool_choice: ToolChoice,
    on_delta: Optional[DeltaCallback] = None,
  ) -> AsyncIterator[NormalizedEvent]: ...
