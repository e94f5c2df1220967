"""
Per-user sliding-window cost accounting.

Each user carries a ``rate_line``: the instant (unix seconds) at which their
accumulated usage debt is paid off. Every request pushes the line forward by
``cost_units * cost_per_unit`` seconds. A request is rejected while the line
is more than ``window_size`` seconds in the future, so a user may burst up to
``window_size`` seconds of debt and then has to wait for it to drain.

``rate_line == 0`` marks an unlimited user.

A rejected request leaves the line untouched, so retrying while limited does
not push the wait further out.
"""

import asyncio
import time

from dataclasses import dataclass
from typing import Callable, Optional

from .profiles import UserProfile, UNLIMITED
from ..errors import RateLimitExceeded
from ..logs import get_logger


@dataclass(frozen=True)
class RateDecision:
  allowed: bool
  rate_line: int
  retry_after: int = 0


class RateLimiter:
  def __init__(
    self,
    window_size: int = 16200,
    cost_per_unit: int = 900,
    clock: Optional[Callable[[], float]] = None,
  ):
    """
    :param window_size: Burst allowance in seconds
    :param cost_per_unit: Seconds of debt per model cost unit
    :param clock: Returns the current unix time in seconds (default: time.time)
    """
    if window_size < 0 or cost_per_unit < 0:
      raise ValueError("window_size and cost_per_unit must not be negative")
    self.window_size = window_size
    self.cost_per_unit = cost_per_unit
    self.clock = clock or time.time
    self.logger = get_logger("rate_limiter")
    self._locks: dict[str, asyncio.Lock] = {}

  def _lock(self, user_id: str) -> asyncio.Lock:
    lock = self._locks.get(user_id)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[user_id] = lock
    return lock

  def now(self) -> int:
    return int(self.clock())

  def decide(self, rate_line: int, cost_units: int, now: int) -> RateDecision:
    """
    Compute the outcome of one request without changing any state.

    :param rate_line: The user's current rate line
    :param cost_units: Cost of the model the request will use
    :param now: Current unix time in seconds
    """
    if rate_line == UNLIMITED:
      return RateDecision(True, UNLIMITED)

    limit_line = now + self.window_size
    if rate_line > limit_line:
      return RateDecision(False, rate_line, rate_line - limit_line)

    add = cost_units * self.cost_per_unit
    if rate_line < now:
      return RateDecision(True, now + add)
    return RateDecision(True, rate_line + add)

  async def check_and_consume(self, profile: UserProfile, cost_units: int) -> int:
    """
    Charge one request to a user, or reject it.

    :param profile: The user's profile; its rate line is updated in place
    :param cost_units: Cost of the model the request will use
    :return: The new rate line
    :raises RateLimitExceeded: If the user is over their window; the rate line is left unchanged
    """
    async with self._lock(profile.user_id):
      now = self.now()
      decision = self.decide(profile.rate_line, cost_units, now)
      if not decision.allowed:
        self.logger.info(f"Rate limited user '{profile.user_id}' for {decision.retry_after}s")
        raise RateLimitExceeded(decision.retry_after, now + decision.retry_after)
      profile.rate_line = decision.rate_line
      self.logger.debug(f"User '{profile.user_id}' rate line is now {profile.rate_line}")
      return profile.rate_line

  async def adjust(self, profile: UserProfile, units: int) -> int:
    """
    Administratively change a user's rate line.

    :param profile: The user's profile
    :param units: 0 makes the user unlimited, a negative value resets the line to now,
      a positive value consumes ``units * cost_per_unit`` seconds of allowance
    :return: The new rate line
    """
    async with self._lock(profile.user_id):
      now = self.now()
      if units == 0:
        profile.rate_line = UNLIMITED
      elif units < 0:
        profile.rate_line = now
      else:
        profile.rate_line = max(profile.rate_line, now) + units * self.cost_per_unit
      self.logger.info(f"Rate line of user '{profile.user_id}' set to {profile.rate_line}")
      return profile.rate_line

  def remaining_units(self, profile: UserProfile) -> Optional[int]:
    """Whole cost units the user can still spend right now, None when unlimited."""
    if profile.unlimited:
      return None
    return (self.now() + self.window_size - max(profile.rate_line, self.now())) // max(self.cost_per_unit, 1)
