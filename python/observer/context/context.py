from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .items import ConversationItem, Message

CONTEXT_CAPACITY_DEFAULT = 2000


@dataclass(frozen=True)
class Context:
  """
  Bounded, ordered conversation log for one channel.

  A Context is never mutated. ``append`` returns a new Context that shares the
  (immutable) items with this one, so a snapshot is just a reference to the
  current value and costs nothing to take.

  Invariant: ``len(items) <= capacity``. When an append would exceed capacity
  the oldest items are evicted first.
  """

  items: tuple[ConversationItem, ...] = ()
  capacity: int = CONTEXT_CAPACITY_DEFAULT

  def __post_init__(self):
    if self.capacity < 1:
      raise ValueError("capacity must be at least 1")
    if len(self.items) > self.capacity:
      object.__setattr__(self, "items", tuple(self.items[-self.capacity :]))

  def append(self, items: Iterable[ConversationItem]) -> "Context":
    combined = self.items + tuple(items)
    if len(combined) > self.capacity:
      combined = combined[len(combined) - self.capacity :]
    return Context(combined, self.capacity)

  def messages(self) -> list[Message]:
    return [item for item in self.items if isinstance(item, Message)]

  def __len__(self):
    return len(self.items)


class WorkingCopy:
  """
  Per-run view over a snapshot.

  Items added during the run go to ``delta``; the snapshot itself is never
  touched. Instructions are rendered in front of the snapshot but are kept out
  of the delta, so they can never be merged into channel history.
  """

  def __init__(self, base: Context, instructions: Sequence[Message] = ()):
    self.base = base
    self.instructions: list[Message] = list(instructions)
    self.delta: list[ConversationItem] = []

  def add(self, item: ConversationItem):
    self.delta.append(item)

  def extend(self, items: Iterable[ConversationItem]):
    self.delta.extend(items)

  @property
  def items(self) -> list[ConversationItem]:
    return [*self.instructions, *self.base.items, *self.delta]

  def delta_context(self) -> Context:
    return Context(tuple(self.delta), max(len(self.delta), 1))

  def __len__(self):
    return len(self.instructions) + len(self.base) + len(self.delta)
