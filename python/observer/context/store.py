import asyncio

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .context import Context, CONTEXT_CAPACITY_DEFAULT
from .items import ConversationItem, Message
from ..logs import get_logger

logger = get_logger("context")


@dataclass
class Channel:
  """
  One conversation channel: its context, enable flag, and optional system prompt override.
  """

  context: Context
  enabled: bool = False
  system_prompt: Optional[str] = None
  lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


class ContextStore:
  """
  Registry of channels, created implicitly on first reference.

  Every channel has its own lock, held only while its context value is read or
  replaced. Long-running work operates on a snapshot and merges back at the
  end, so a slow run never blocks other activity on the same channel.

  Two runs that overlap on one channel both start from the state they saw and
  their merges interleave by arrival; the second merge does not see the first
  run's output in its prompt.
  """

  def __init__(self, capacity: int = CONTEXT_CAPACITY_DEFAULT):
    if capacity < 1:
      raise ValueError("capacity must be at least 1")
    self.capacity = capacity
    self.channels: dict[str, Channel] = {}

  def get_or_create(self, channel_id: str) -> Channel:
    # No await between lookup and insert, so this is atomic on the event loop.
    channel = self.channels.get(channel_id)
    if channel is None:
      channel = Channel(Context((), self.capacity))
      self.channels[channel_id] = channel
      logger.debug(f"Created channel '{channel_id}'")
    return channel

  async def append(self, channel_id: str, items: Iterable[ConversationItem]):
    items = list(items)
    channel = self.get_or_create(channel_id)
    async with channel.lock:
      before = len(channel.context)
      channel.context = channel.context.append(items)
      evicted = before + len(items) - len(channel.context)
    if evicted > 0:
      logger.debug(f"Evicted {evicted} items from channel '{channel_id}'")

  async def snapshot(self, channel_id: str) -> Context:
    channel = self.get_or_create(channel_id)
    async with channel.lock:
      return channel.context

  async def merge_messages_only(self, channel_id: str, delta: Iterable[ConversationItem]) -> int:
    """
    Append only the Message items of a run's delta, in order.

    :param channel_id: Channel to merge into
    :param delta: Items produced by one run (a Context or any iterable of items)
    :return: Number of messages merged
    """
    if isinstance(delta, Context):
      delta = delta.items
    messages = [item for item in delta if isinstance(item, Message)]
    if messages:
      await self.append(channel_id, messages)
    logger.debug(f"Merged {len(messages)} messages into channel '{channel_id}'")
    return len(messages)

  async def clear(self, channel_id: str):
    channel = self.get_or_create(channel_id)
    async with channel.lock:
      channel.context = Context((), self.capacity)
    logger.info(f"Cleared context of channel '{channel_id}'")

  def set_enabled(self, channel_id: str, enabled: bool):
    self.get_or_create(channel_id).enabled = enabled
    logger.info(f"Channel '{channel_id}' {'enabled' if enabled else 'disabled'}")

  def is_enabled(self, channel_id: str) -> bool:
    return self.get_or_create(channel_id).enabled

  def set_system_prompt(self, channel_id: str, prompt: Optional[str]):
    self.get_or_create(channel_id).system_prompt = prompt

  def get_system_prompt(self, channel_id: str, default: str) -> str:
    prompt = self.get_or_create(channel_id).system_prompt
    return default if prompt is None else prompt
