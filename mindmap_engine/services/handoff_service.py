import uuid
import logging
from typing import Dict, Optional

from mindmap_engine.schemas.mindmap import MindmapTree

logger = logging.getLogger(__name__)


class HandoffChannel:
    """
    Single-slot transfer of one tree from the generation flow to the
    viewing flow. ``put`` overwrites; ``take`` returns the tree once and
    None ("no map") afterwards.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex
        self._slot: Optional[MindmapTree] = None

    def put(self, tree: MindmapTree) -> None:
        if self._slot is not None:
            logger.info(f"[HANDOFF] {self.session_id}: replacing unread map '{self._slot.title}'")
        self._slot = tree

    def take(self) -> Optional[MindmapTree]:
        tree, self._slot = self._slot, None
        return tree


class HandoffRegistry:
    """
    Process-local channels, one per viewing session. Nothing is persisted.
    A channel is released as soon as its map is delivered; past
    ``max_sessions`` the oldest unread channel is dropped.
    """

    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._channels: Dict[str, HandoffChannel] = {}

    def open(self, session_id: Optional[str] = None) -> HandoffChannel:
        if session_id and session_id in self._channels:
            return self._channels[session_id]
        channel = HandoffChannel(session_id)
        while len(self._channels) >= self.max_sessions:
            oldest = next(iter(self._channels))
            del self._channels[oldest]
            logger.warning(f"[HANDOFF] Registry full; dropped unread session {oldest}")
        self._channels[channel.session_id] = channel
        return channel

    def take(self, session_id: str) -> Optional[MindmapTree]:
        channel = self._channels.pop(session_id, None)
        if channel is None:
            return None
        tree = channel.take()
        if tree is not None:
            logger.info(f"[HANDOFF] ✓ {session_id}: delivered '{tree.title}'")
        return tree

    def discard(self, session_id: str) -> bool:
        return self._channels.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._channels)
