import json

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Role(Enum):
  SYSTEM = "system"
  DEVELOPER = "developer"
  USER = "user"
  ASSISTANT = "assistant"


class ToolStatus(Enum):
  OK = "ok"
  ERROR = "error"


class ImageDetail(Enum):
  LOW = "low"
  HIGH = "high"
  AUTO = "auto"


@dataclass(frozen=True)
class TextPart:
  text: str = ""


@dataclass(frozen=True)
class ImagePart:
  url: str
  detail: ImageDetail = ImageDetail.LOW


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class Message:
  """
  A role-tagged message. The only item kind kept in long-term channel history.
  """

  role: Role
  content: tuple[ContentPart, ...] = field(default_factory=tuple)

  @classmethod
  def text(cls, role: Role, text: str) -> "Message":
    return cls(role, (TextPart(text),))

  @classmethod
  def system(cls, text: str) -> "Message":
    return cls.text(Role.SYSTEM, text)

  @classmethod
  def user(cls, text: str, images: tuple[ImagePart, ...] = ()) -> "Message":
    return cls(Role.USER, (TextPart(text), *images))

  @classmethod
  def assistant(cls, text: str) -> "Message":
    return cls.text(Role.ASSISTANT, text)

  @property
  def plain_text(self) -> str:
    return "".join(part.text for part in self.content if isinstance(part, TextPart))

  @property
  def images(self) -> list[ImagePart]:
    return [part for part in self.content if isinstance(part, ImagePart)]

  def text_with_image_placeholders(self) -> str:
    """Render images as ``[image] <url>`` lines, for backends that cannot see them."""
    out = []
    for part in self.content:
      if isinstance(part, TextPart):
        if part.text:
          out.append(part.text)
      else:
        out.append(f"[image] {part.url}")
    return "\n".join(out)


@dataclass(frozen=True)
class ToolCall:
  call_id: str
  tool_name: str
  arguments: dict[str, Any] = field(default_factory=dict)

  def arguments_json(self) -> str:
    return json.dumps(self.arguments, ensure_ascii=False)

  def __hash__(self):
    return hash((self.call_id, self.tool_name))


@dataclass(frozen=True)
class ToolResult:
  call_id: str
  output: str
  status: ToolStatus = ToolStatus.OK
  tool_name: str = ""

  @property
  def is_error(self) -> bool:
    return self.status is ToolStatus.ERROR


@dataclass(frozen=True)
class ReasoningNote:
  text: str


ConversationItem = Union[Message, ToolCall, ToolResult, ReasoningNote]


def is_message(item: ConversationItem) -> bool:
  return isinstance(item, Message)
