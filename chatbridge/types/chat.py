"""Conversation turn types shared by the store, the backend client and the API."""

from dataclasses import dataclass
from typing import Any, Literal, Mapping

TurnRole = Literal["user", "assistant"]

VALID_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class Turn:
    """One role-tagged message of a conversation."""

    role: TurnRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Turn":
        role = data.get("role")
        if role not in VALID_ROLES:
            raise ValueError(f"unsupported role: {role!r}")
        content = data.get("content")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise ValueError("turn content must be a string")
        return cls(role=role, content=content)
