"""
Exception classes for the conversation runtime.

Errors fall into two groups:

- Run-aborting errors (``ProtocolError``, ``NetworkError``, ``ToolNotFound``) end
  the attempt with the current model. Protocol and network failures make the
  model eligible for fallback in auto mode; a missing tool does not, since a
  different model cannot fix a tool that was never registered.
- Turn-level errors (``ModelsExhausted``, ``RateLimitExceeded``,
  ``ChannelDisabled``, ``TurnTimeoutError``) are raised before or around a
  run and are rendered to the caller as short diagnostics.

``ToolExecutionError`` is the only error that never escapes a run: it is turned
into a ``ToolResult`` with an error status and shown to the model.
"""

import asyncio
from typing import Optional, Dict, Any


class ObserverError(Exception):
  """Base class for all runtime errors."""


class ProviderError(ObserverError):
  """
  A model provider could not produce a usable response.

  Attributes:
    reason: Human-readable failure reason reported to the caller
    model: Name of the model that failed, if known
  """

  def __init__(self, reason: str, model: Optional[str] = None):
    self.reason = reason
    self.model = model
    super().__init__(reason)


class ProtocolError(ProviderError):
  """The provider answered with a malformed response or a failed/incomplete terminal event."""


class ProviderRequestError(ProtocolError):
  """
  The provider rejected the request before producing any output.

  Typically a 4xx answer, e.g. a model that does not accept the tool
  definitions it was sent. The orchestrator retries once without tools.
  """

  def __init__(self, reason: str, model: Optional[str] = None, status_code: Optional[int] = None):
    super().__init__(reason, model)
    self.status_code = status_code


class NetworkError(ProviderError):
  """Connection, transport timeout, or server-side (5xx) failure."""


class ToolNotFound(ObserverError):
  """The model asked for a tool that is not registered."""

  def __init__(self, name: str):
    self.name = name
    super().__init__(f"tool not found: {name}")


class ToolExecutionError(ObserverError):
  """A tool ran and reported failure. Fed back to the model, never fatal."""

  def __init__(self, name: str, message: str):
    self.name = name
    self.message = message
    super().__init__(f"{name}: {message}")


class ModelsExhausted(ObserverError):
  """
  Every candidate model of a turn failed. Nothing was merged.

  Attributes:
    attempts: The failed attempts, in the order they were tried
  """

  def __init__(self, attempts: list):
    self.attempts = attempts
    self.tried = [attempt.model for attempt in attempts]
    self.reason = attempts[-1].reason if attempts else "no candidate models"
    super().__init__(self.diagnostic())

  def diagnostic(self) -> str:
    return f"Err: all models failed (tried: {', '.join(self.tried)}): {self.reason}"


class RateLimitExceeded(ObserverError):
  """
  The user has exhausted their allowance; no model call was made.

  Attributes:
    retry_after: Seconds until the request would be accepted
    retry_at: Unix timestamp at which the request would be accepted
  """

  def __init__(self, retry_after: float, retry_at: float):
    self.retry_after = retry_after
    self.retry_at = retry_at
    super().__init__(f"rate limit exceeded, retry after {retry_after:.0f}s")


class ChannelDisabled(ObserverError):
  def __init__(self, channel_id: str):
    self.channel_id = channel_id
    super().__init__(f"AI is disabled in channel {channel_id}")


class TurnTimeoutError(asyncio.TimeoutError):
  """
  Raised when a turn exceeds the caller-enforced deadline.

  Nothing is merged into the channel context after a timeout, but tools that
  already finished before the deadline keep their side effects (a message a
  tool already sent stays sent).

  Attributes:
    timeout: The deadline in seconds
    context: Additional context about the turn
    message: Human-readable error message
  """

  def __init__(
    self,
    timeout: float,
    context: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
  ):
    self.timeout = timeout
    self.context = context or {}

    if message is None:
      message = self._build_message()

    self.message = message
    super().__init__(message)

  def _build_message(self) -> str:
    parts = [f"Turn timed out after {self.timeout}s."]

    if self.context:
      context_parts = [f"{k}: {v}" for k, v in self.context.items() if v is not None]
      if context_parts:
        parts.append(f"Context: {', '.join(context_parts)}.")

    parts.append("Tools that completed before the deadline are not rolled back.")

    return " ".join(parts)
