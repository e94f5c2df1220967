import asyncio
import time

from typing import Awaitable, Callable, Optional

from ..logs import get_logger

logger = get_logger("runtime")


class ProgressThrottle:
  """
  Forward progress text to a callback at most once per interval.

  Updates that arrive inside the interval replace each other; the latest one
  is delivered when the interval has passed. ``close`` drops whatever is still
  pending. A failing callback is logged and never interrupts the turn.
  """

  def __init__(
    self,
    callback: Callable[[str], Awaitable[None]],
    interval: float = 1.0,
    clock: Callable[[], float] = time.monotonic,
  ):
    self.callback = callback
    self.interval = interval
    self.clock = clock
    self.last_sent: Optional[float] = None
    self.pending: Optional[str] = None
    self._flush_task: Optional[asyncio.Task] = None

  async def update(self, text: str):
    now = self.clock()
    if self.last_sent is None or now - self.last_sent >= self.interval:
      self.pending = None
      await self._send(text, now)
      return

    self.pending = text
    if self._flush_task is None or self._flush_task.done():
      delay = self.interval - (now - self.last_sent)
      self._flush_task = asyncio.create_task(self._flush_later(delay))

  async def _flush_later(self, delay: float):
    await asyncio.sleep(delay)
    if self.pending is not None:
      text, self.pending = self.pending, None
      await self._send(text, self.clock())

  async def _send(self, text: str, now: float):
    self.last_sent = now
    try:
      await self.callback(text)
    except Exception as e:
      logger.warning(f"Progress update failed: {type(e).__name__}: {e}")

  async def close(self):
    self.pending = None
    if self._flush_task is not None and not self._flush_task.done():
      self._flush_task.cancel()
      try:
        await self._flush_task
      except asyncio.CancelledError:
        pass


class Heartbeat:
  """
  Call ``beat`` at a fixed cadence while the block runs (a typing indicator).

  A failing beat is logged and the heartbeat keeps going.

  Usage:
      async with Heartbeat(send_typing, 4.0):
          await long_running_turn()
  """

  def __init__(self, beat: Callable[[], Awaitable[None]], interval: float = 4.0):
    self.beat = beat
    self.interval = interval
    self.beats = 0
    self._task: Optional[asyncio.Task] = None

  async def _loop(self):
    while True:
      try:
        await self.beat()
        self.beats += 1
      except Exception as e:
        logger.warning(f"Heartbeat failed: {type(e).__name__}: {e}")
      await asyncio.sleep(self.interval)

  async def __aenter__(self):
    self._task = asyncio.create_task(self._loop())
    return self

  async def __aexit__(self, exc_type, exc, tb):
    self._task.cancel()
    try:
      await self._task
    except asyncio.CancelledError:
      pass
    return False
