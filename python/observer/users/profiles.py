from dataclasses import dataclass
from typing import Optional

from ..models.model import AUTO, CATALOG, model_names
from ..logs import get_logger

logger = get_logger("runtime")

# A fresh user starts limited, with an already drained debt
INITIAL_RATE_LINE = 1
UNLIMITED = 0


@dataclass
class UserProfile:
  user_id: str
  selected_model: str
  rate_line: int = INITIAL_RATE_LINE

  @property
  def unlimited(self) -> bool:
    return self.rate_line == UNLIMITED


class UserRegistry:
  """
  Per-user profiles, created on first reference.
  """

  def __init__(self, default_model: str = "gpt-5-mini"):
    validate_model_name(default_model)
    self.default_model = default_model
    self.profiles: dict[str, UserProfile] = {}

  def get_or_create(self, user_id: str) -> UserProfile:
    profile = self.profiles.get(user_id)
    if profile is None:
      profile = UserProfile(user_id, self.default_model)
      self.profiles[user_id] = profile
    return profile

  def select_model(self, user_id: str, name: str) -> UserProfile:
    """
    Set the model a user's turns run with.

    :param user_id: The user
    :param name: A catalog model name or "auto"
    :raises ValueError: If the name is unknown
    """
    validate_model_name(name)
    profile = self.get_or_create(user_id)
    profile.selected_model = name
    logger.info(f"User '{user_id}' selected model '{name}'")
    return profile

  def get(self, user_id: str) -> Optional[UserProfile]:
    return self.profiles.get(user_id)


def validate_model_name(name: str):
  if name != AUTO and name not in CATALOG:
    raise ValueError(f"Unknown model '{name}'. Available: {', '.join(model_names())}")
