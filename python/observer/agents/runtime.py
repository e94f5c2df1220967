import asyncio

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from .orchestrator import AdapterFactory, Orchestrator, ProgressCallback, TurnResult
from .progress import Heartbeat, ProgressThrottle
from ..config import Settings
from ..context.items import ImagePart, Message
from ..context.store import ContextStore
from ..errors import ChannelDisabled, ModelsExhausted, RateLimitExceeded, TurnTimeoutError
from ..logs import get_logger, InfoContext
from ..models.clients import DeltaCallback, create_adapter
from ..models.model import AUTO, resolve_candidates
from ..tools.builtin import builtin_tools
from ..tools.protocol import ToolContext
from ..tools.registry import ToolRegistry
from ..users.profiles import UserRegistry
from ..users.rate_limiter import RateLimiter

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif")


@dataclass(frozen=True)
class Attachment:
  url: str
  filename: str = ""
  content_type: Optional[str] = None

  def is_image(self) -> bool:
    if self.content_type:
      return self.content_type.startswith("image/")
    return self.filename.lower().endswith(IMAGE_EXTENSIONS)


@dataclass(frozen=True)
class InboundMessage:
  """A chat message as delivered by the platform, for passive ingestion."""

  user_id: str
  text: str
  message_id: Optional[str] = None
  author_name: Optional[str] = None
  attachments: tuple[Attachment, ...] = ()
  reply_ref: Optional[str] = None


def build_user_message(
  user_id: str,
  text: str,
  attachments: Iterable[Attachment] = (),
  reply_ref: Optional[str] = None,
  author_name: Optional[str] = None,
  message_id: Optional[str] = None,
) -> Message:
  """
  Build the user Message for a chat message.

  The text is prefixed with ``[<name> id:<message id>]`` (and ``reply_to:`` when
  the message replies to another) so the model can tell speakers apart.
  Image attachments become image parts.
  """
  meta = f"{author_name or user_id} id:{message_id or '-'}"
  if reply_ref:
    meta += f" reply_to:{reply_ref}"
  images = tuple(ImagePart(a.url) for a in attachments if a.is_image())
  return Message.user(f"[{meta}]\n{text}", images)


class ObserverRuntime(InfoContext):
  """
  Caller-facing entry point used by the chat-platform layer.

  Holds the process-wide registries (channels, users, tools) and runs turns.
  All state is in memory and is lost on restart.
  """

  def __init__(
    self,
    settings: Optional[Settings] = None,
    store: Optional[ContextStore] = None,
    users: Optional[UserRegistry] = None,
    registry: Optional[ToolRegistry] = None,
    rate_limiter: Optional[RateLimiter] = None,
    adapter_factory: AdapterFactory = create_adapter,
  ):
    self.logger = get_logger("runtime")
    self.settings = settings or Settings()
    self.store = store or ContextStore(self.settings.context_capacity)
    self.users = users or UserRegistry(self.settings.default_model)
    self.registry = registry or ToolRegistry(builtin_tools(), disabled=self.settings.disabled_tools)
    self.rate_limiter = rate_limiter or RateLimiter(self.settings.rate_window_size, self.settings.rate_cost_per_unit)
    self.orchestrator = Orchestrator(self.store, self.registry, self.settings, adapter_factory)

  async def submit_turn(
    self,
    channel_id: str,
    user_id: str,
    text: str,
    attachments: Sequence[Attachment] = (),
    reply_ref: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_delta: Optional[DeltaCallback] = None,
    on_typing: Optional[Callable[[], Awaitable[None]]] = None,
    author_name: Optional[str] = None,
    message_id: Optional[str] = None,
  ) -> str:
    """
    Run one turn for a message that addresses the persona.

    Never raises for expected failures: they come back as ``Err: ...`` text.

    :param channel_id: Channel the message was posted in
    :param user_id: Author of the message
    :param text: Message text
    :param attachments: Attachments of the message; images are shown to the model
    :param reply_ref: Id of the message this one replies to
    :param on_progress: Receives status text, at most once per progress interval
    :param on_delta: Receives partial output text, best effort
    :param on_typing: Called at the heartbeat cadence while the turn runs
    :param author_name: Display name used in the message prefix
    :param message_id: Platform id of the message
    :return: The reply with its footer, or a diagnostic starting with ``Err:``
    """
    try:
      result = await self.run_turn(
        channel_id,
        user_id,
        text,
        attachments,
        reply_ref,
        on_progress,
        on_delta,
        on_typing,
        author_name,
        message_id,
      )
    except ChannelDisabled:
      return "Err: AI is disabled in this channel"
    except RateLimitExceeded as e:
      return f"Err: rate limit - try again after {int(e.retry_after)}s"
    except TurnTimeoutError:
      return "Err: timeout"
    except ModelsExhausted as e:
      return e.diagnostic()
    except Exception:
      self.logger.exception(f"Turn in channel '{channel_id}' failed unexpectedly")
      return "Err: internal error"
    return result.render()

  async def run_turn(
    self,
    channel_id: str,
    user_id: str,
    text: str,
    attachments: Sequence[Attachment] = (),
    reply_ref: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_delta: Optional[DeltaCallback] = None,
    on_typing: Optional[Callable[[], Awaitable[None]]] = None,
    author_name: Optional[str] = None,
    message_id: Optional[str] = None,
  ) -> TurnResult:
    """
    Like ``submit_turn`` but returns the TurnResult and raises on failure.

    Order of checks: channel enabled, then rate limit (no model is called when
    either rejects), then the run under the turn deadline. After a timeout
    nothing is merged, but tools that already finished keep their effects.

    :raises ChannelDisabled: If the channel is not enabled
    :raises RateLimitExceeded: If the user is over their allowance
    :raises TurnTimeoutError: If the deadline passed
    :raises ModelsExhausted: If every candidate model failed
    """
    if not self.store.is_enabled(channel_id):
      raise ChannelDisabled(channel_id)

    profile = self.users.get_or_create(user_id)
    candidates = resolve_candidates(profile.selected_model)
    await self.rate_limiter.check_and_consume(profile, candidates[0].cost_units)

    inbound = build_user_message(user_id, text, attachments, reply_ref, author_name, message_id)
    system_prompt = self.store.get_system_prompt(channel_id, self.settings.system_prompt)
    throttle = ProgressThrottle(on_progress, self.settings.progress_interval) if on_progress else None
    tool_context = ToolContext(channel_id, user_id, on_progress=throttle.update if throttle else None)

    async def beat():
      if on_typing is not None:
        await on_typing()

    try:
      with self.info(
        f"Turn started in channel '{channel_id}' for user '{user_id}' with '{profile.selected_model}'",
        f"Turn finished in channel '{channel_id}'",
      ):
        async with Heartbeat(beat, self.settings.heartbeat_interval):
          async with asyncio.timeout(self.settings.turn_timeout):
            return await self.orchestrator.run_turn(
              channel_id,
              inbound,
              candidates,
              system_prompt,
              tool_context,
              auto=profile.selected_model == AUTO,
              progress=throttle.update if throttle else None,
              on_delta=on_delta,
            )
    except TimeoutError:
      self.logger.warning(f"Turn in channel '{channel_id}' timed out after {self.settings.turn_timeout}s")
      raise TurnTimeoutError(
        self.settings.turn_timeout, {"channel": channel_id, "user": user_id, "model": profile.selected_model}
      )
    finally:
      if throttle is not None:
        await throttle.close()

  async def ingest(self, channel_id: str, message: InboundMessage):
    """
    Add a message that does not address the persona to the channel context.

    Ingested only while the channel is enabled.
    """
    if not self.store.is_enabled(channel_id):
      return
    if not message.text and not any(a.is_image() for a in message.attachments):
      return
    await self.store.append(
      channel_id,
      [
        build_user_message(
          message.user_id,
          message.text,
          message.attachments,
          message.reply_ref,
          message.author_name,
          message.message_id,
        )
      ],
    )

  async def collect_history(self, channel_id: str, messages: Iterable[InboundMessage]) -> int:
    """
    Bulk-ingest past messages, oldest first, regardless of the enabled flag.

    :return: Number of messages added
    """
    items = [
      build_user_message(m.user_id, m.text, m.attachments, m.reply_ref, m.author_name, m.message_id)
      for m in messages
      if m.text or any(a.is_image() for a in m.attachments)
    ]
    await self.store.append(channel_id, items)
    self.logger.info(f"Collected {len(items)} messages into channel '{channel_id}'")
    return len(items)

  def enable(self, channel_id: str):
    self.store.set_enabled(channel_id, True)

  def disable(self, channel_id: str):
    self.store.set_enabled(channel_id, False)

  async def clear(self, channel_id: str):
    await self.store.clear(channel_id)

  def set_system_prompt(self, channel_id: str, prompt: Optional[str]):
    """Override the system prompt of a channel; None restores the default."""
    self.store.set_system_prompt(channel_id, prompt)

  def select_model(self, user_id: str, name: str):
    """
    :raises ValueError: If the model name is unknown
    """
    self.users.select_model(user_id, name)

  async def adjust_rate_line(self, admin_id: str, user_id: str, units: int) -> int:
    """
    Change a user's rate line; 0 makes them unlimited, negative resets to now,
    positive consumes ``units`` cost units of their allowance.

    :return: The new rate line
    :raises PermissionError: If ``admin_id`` is not an admin
    """
    if admin_id not in self.settings.admin_users:
      raise PermissionError(f"user '{admin_id}' may not adjust rate lines")
    profile = self.users.get_or_create(user_id)
    return await self.rate_limiter.adjust(profile, units)
