"""Bounded in-memory conversation cache.

Conversations are created on first reference and kept in an LRU order.
Every mutation marks the conversation dirty until a sync pass reports it
persisted. When the store is full the least recently used clean conversation
is evicted; if every candidate is dirty the oldest one is evicted anyway and
its snapshot is parked in a bounded backlog that the next sync pass drains,
so the sync collaborator sees it at least once. Without a sync collaborator
(`retain_evicted=False`) the snapshot is dropped.
"""

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from ..types.chat import Turn

logger = logging.getLogger("chatbridge")

MAX_TITLE_LENGTH = 100
DEFAULT_MAX_CONVERSATIONS = 100
DEFAULT_MAX_EVICTED = 100


@dataclass
class Conversation:
    id: str
    turns: list[Turn] = field(default_factory=list)
    title: Optional[str] = None
    dirty: bool = False
    created_at: float = field(default_factory=time.time)
    last_accessed_at: float = field(default_factory=time.time)
    last_synced_at: Optional[float] = None
    revision: int = 0


@dataclass(frozen=True)
class ConversationSnapshot:
    """Immutable copy of a conversation handed to the sync collaborator."""

    id: str
    turns: tuple[Turn, ...]
    title: Optional[str]
    revision: int
    created_at: float
    evicted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "turns": [turn.to_dict() for turn in self.turns],
            "revision": self.revision,
            "created_at": self.created_at,
        }


def hash_turn(turn: Turn) -> str:
    return hashlib.sha256(f"{turn.role}:{turn.content}".encode("utf-8")).hexdigest()


def find_new_turns(incoming: Sequence[Turn], stored: Sequence[Turn]) -> list[Turn]:
    """Return the incoming turns after the prefix already stored.

    Clients of a stateless chat API resend the whole history on every
    request; matching is done on role+content hashes, position by position.
    """
    if not stored:
        return list(incoming)
    matched = 0
    for stored_turn, incoming_turn in zip(stored, incoming):
        if hash_turn(stored_turn) != hash_turn(incoming_turn):
            break
        matched += 1
    return list(incoming[matched:])


def truncate_title(title: str) -> str:
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        return title[:MAX_TITLE_LENGTH]
    return title


class ConversationStore:
    """LRU conversation cache with dirty tracking."""

    def __init__(
        self,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        on_change: Optional[Callable[[str], None]] = None,
        *,
        retain_evicted: bool = False,
        max_evicted: int = DEFAULT_MAX_EVICTED,
    ) -> None:
        if max_conversations < 1:
            raise ValueError("max_conversations must be at least 1")
        if max_evicted < 1:
            raise ValueError("max_evicted must be at least 1")
        self.max_conversations = max_conversations
        self.on_change = on_change
        self.retain_evicted = retain_evicted
        self.max_evicted = max_evicted
        self._conversations: OrderedDict[str, Conversation] = OrderedDict()
        self._evicted: list[ConversationSnapshot] = []
        self._eviction_count = 0
        self._forced_eviction_count = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def get(self, conversation_id: str) -> Optional[Conversation]:
        """Return the live conversation without touching recency."""
        return self._conversations.get(conversation_id)

    def get_turns(self, conversation_id: str) -> list[Turn]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return []
        self._touch(conversation)
        return list(conversation.turns)

    def is_dirty(self, conversation_id: str) -> bool:
        conversation = self._conversations.get(conversation_id)
        return conversation is not None and conversation.dirty

    def get_dirty(self) -> list[ConversationSnapshot]:
        return [self._snapshot(c) for c in self._conversations.values() if c.dirty]

    def __len__(self) -> int:
        return len(self._conversations)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append_messages(self, conversation_id: str, turns: Sequence[Turn]) -> list[Turn]:
        """Append turns, dropping any turn equal to the current last turn.

        Returns the turns actually appended.
        """
        conversation = self._get_or_create(conversation_id)
        appended: list[Turn] = []
        for turn in turns:
            if conversation.turns and conversation.turns[-1] == turn:
                logger.debug("Dropping duplicate %s turn for %s", turn.role, conversation_id)
                continue
            conversation.turns.append(turn)
            appended.append(turn)

        if appended:
            self._mutated(conversation)
        else:
            self._touch(conversation)
        return appended

    def append_history(self, conversation_id: str, incoming: Sequence[Turn]) -> list[Turn]:
        """Append the part of a client history that is not stored yet.

        ``incoming`` is either the full history (stored prefix is skipped) or
        only the new turns (nothing matches the stored prefix).
        """
        conversation = self._conversations.get(conversation_id)
        stored = conversation.turns if conversation is not None else []
        new_turns = find_new_turns(incoming, stored)
        matched = len(incoming) - len(new_turns)
        if 0 < matched < min(len(stored), len(incoming)):
            logger.warning(
                "History for %s diverges from stored turns at index %d (%d stored, %d incoming)",
                conversation_id,
                matched,
                len(stored),
                len(incoming),
            )
        return self.append_messages(conversation_id, new_turns)

    def append_assistant_response(self, conversation_id: str, content: str) -> list[Turn]:
        return self.append_messages(conversation_id, [Turn(role="assistant", content=content)])

    def set_title(self, conversation_id: str, title: str) -> None:
        conversation = self._get_or_create(conversation_id)
        conversation.title = truncate_title(title)
        self._mutated(conversation)

    def mark_dirty(self, conversation_id: str) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return
        self._mutated(conversation)

    def mark_synced(self, conversation_id: str, revision: int) -> bool:
        """Clear the dirty flag if nothing changed since the synced snapshot."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return False
        conversation.last_synced_at = time.time()
        if conversation.revision != revision:
            logger.debug(
                "Conversation %s changed during sync (rev %d -> %d), keeping dirty",
                conversation_id,
                revision,
                conversation.revision,
            )
            return False
        conversation.dirty = False
        return True

    def take_evicted(self) -> list[ConversationSnapshot]:
        """Drain the snapshots of dirty conversations that were force-evicted."""
        evicted, self._evicted = self._evicted, []
        return evicted

    def restore_evicted(self, snapshots: Sequence[ConversationSnapshot]) -> None:
        """Put back evicted snapshots a sync pass failed to push."""
        self._evicted[:0] = snapshots
        self._trim_evicted()

    def evict_if_needed(self, keep: Optional[str] = None) -> None:
        """Evict until the store holds at most ``max_conversations``."""
        while len(self._conversations) > self.max_conversations:
            victim = self._pick_victim(keep)
            if victim is None:
                break
            conversation = self._conversations.pop(victim)
            self._eviction_count += 1
            if conversation.dirty and self.retain_evicted:
                self._forced_eviction_count += 1
                self._evicted.append(self._snapshot(conversation, evicted=True))
                logger.warning(
                    "Force-evicted dirty conversation %s (%d turns); queued for the next sync",
                    victim,
                    len(conversation.turns),
                )
                self._trim_evicted()
            elif conversation.dirty:
                self._forced_eviction_count += 1
                logger.warning(
                    "Force-evicted dirty conversation %s (%d turns); no sync configured, dropped",
                    victim,
                    len(conversation.turns),
                )
            else:
                logger.debug("Evicted conversation %s", victim)

    def get_stats(self) -> dict[str, Any]:
        dirty = sum(1 for c in self._conversations.values() if c.dirty)
        return {
            "total": len(self._conversations),
            "dirty": dirty,
            "max_size": self.max_conversations,
            "evictions": self._eviction_count,
            "forced_evictions": self._forced_eviction_count,
            "evicted_pending_sync": len(self._evicted),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_or_create(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None:
            return conversation
        conversation = Conversation(id=conversation_id)
        self._conversations[conversation_id] = conversation
        logger.debug("Created conversation %s", conversation_id)
        self.evict_if_needed(keep=conversation_id)
        return conversation

    def _pick_victim(self, keep: Optional[str]) -> Optional[str]:
        oldest: Optional[str] = None
        # OrderedDict order is least recently accessed first
        for conversation_id, conversation in self._conversations.items():
            if conversation_id == keep:
                continue
            if oldest is None:
                oldest = conversation_id
            if not conversation.dirty:
                return conversation_id
        return oldest

    def _trim_evicted(self) -> None:
        overflow = len(self._evicted) - self.max_evicted
        if overflow <= 0:
            return
        dropped = self._evicted[:overflow]
        del self._evicted[:overflow]
        logger.error(
            "Eviction backlog full (%d); dropped unsynced conversations: %s",
            self.max_evicted,
            ", ".join(s.id for s in dropped),
        )

    def _touch(self, conversation: Conversation) -> None:
        conversation.last_accessed_at = time.time()
        self._conversations.move_to_end(conversation.id)

    def _mutated(self, conversation: Conversation) -> None:
        self._touch(conversation)
        conversation.revision += 1
        conversation.dirty = True
        if self.on_change is not None:
            self.on_change(conversation.id)

    @staticmethod
    def _snapshot(conversation: Conversation, evicted: bool = False) -> ConversationSnapshot:
        return ConversationSnapshot(
            id=conversation.id,
            turns=tuple(conversation.turns),
            title=conversation.title,
            revision=conversation.revision,
            created_at=conversation.created_at,
            evicted=evicted,
        )
