"""
AffectionManager: the one owner of a workspace's live state.

Each manager caches a single AffectionState and runs every
load -> mutate -> save sequence under its own lock. Two managers over the
same workspace (e.g. two processes) are not coordinated; the last writer wins.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from companion.affection.core import AffectionState, PresenceTransition, StickerTriggers, TriggerResult
from companion.affection.config import AffectionConfig, get_config
from companion.affection.computation import parse_iso, to_iso, utc_now
from companion.affection.bookkeeping import refresh_bookkeeping
from companion.affection.persistence import WorkspacePath, load_prefs, load_state, save_state
from companion.affection.presence import handle_presence_change
from companion.affection.sticker_triggers import add_sticker_trigger, evaluate_sticker_triggers
from companion.affection.triggers import evaluate_text_triggers
from companion.affection.validation import InvalidPresenceError, normalize_presence

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def snapshot_of(state: AffectionState) -> Dict[str, Any]:
    """Public, read-only view of a state."""
    return {
        "label": state.label,
        "aff": state.aff,
        "closeness": state.closeness,
        "trust": state.trust,
        "reliabilityTrust": state.reliability_trust,
        "irritation": state.irritation,
        "presence": state.presence,
        "expectedReturnAt": state.expected_return_at,
        "today": state.today,
        "lastMessageAt": state.last_message_at,
    }


class AffectionManager:
    """
    Façade over the store, evaluators and presence machine for one workspace.

    Save failures propagate to the caller; the in-memory mutation is kept,
    so calling save() again once storage recovers persists it.
    """

    def __init__(
        self,
        workspace: WorkspacePath,
        config: Optional[AffectionConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.workspace = Path(workspace)
        self.config = config if config is not None else get_config()
        self._clock = clock or utc_now
        self._state: Optional[AffectionState] = None
        self._lock = asyncio.Lock()

    def _now(self) -> datetime:
        return self._clock()

    # -------------------------------------------------------------------------
    # Load / save
    # -------------------------------------------------------------------------

    async def _load(self) -> AffectionState:
        if self._state is None:
            self._state = await load_state(self.workspace, self._now(), self.config)
            logger.debug(
                "Loaded affection state for %s: %s aff:%s",
                self.workspace, self._state.label, self._state.aff,
            )
        return self._state

    async def _save(self) -> None:
        if self._state is None:
            return
        await save_state(self.workspace, self._state)
        logger.debug(
            "Saved affection state for %s: %s aff:%s",
            self.workspace, self._state.label, self._state.aff,
        )

    async def load(self) -> AffectionState:
        """Load the workspace state once and cache it."""
        async with self._lock:
            return await self._load()

    async def save(self) -> None:
        """Persist the cached state (no-op if nothing is loaded)."""
        async with self._lock:
            await self._save()

    @property
    def loaded(self) -> bool:
        return self._state is not None

    # -------------------------------------------------------------------------
    # Event processing
    # -------------------------------------------------------------------------

    async def process_message(self, text: str, message_id: Optional[str] = None) -> TriggerResult:
        """
        Run text triggers for an inbound message.

        lastMessageAt is refreshed on every call, duplicates included, and
        the state is saved once with both the trigger changes and the
        timestamp.
        """
        async with self._lock:
            state = await self._load()
            now = self._now()
            refresh_bookkeeping(state, now, self.config)

            result = evaluate_text_triggers(text, state, message_id, config=self.config)
            state.last_message_at = to_iso(now)

            await self._save()
            return result

    async def process_sticker(self, sticker_id: str, message_id: Optional[str] = None) -> TriggerResult:
        """Run sticker triggers; saves only when something changed."""
        async with self._lock:
            state = await self._load()
            prefs = await load_prefs(self.workspace)
            now = self._now()
            refresh_bookkeeping(state, now, self.config)

            result = evaluate_sticker_triggers(
                sticker_id, state, prefs, message_id, now, self.config
            )
            if result.changed:
                await self._save()
            return result

    async def set_presence(
        self,
        new_presence: str,
        expected_return_at: Optional[str] = None,
    ) -> PresenceTransition:
        """
        Change presence and always persist.

        Raises:
            InvalidPresenceError: Unknown presence or unparsable estimate
        """
        presence = normalize_presence(new_presence)
        estimate = None
        if expected_return_at is not None:
            try:
                estimate = to_iso(parse_iso(expected_return_at))
            except (TypeError, ValueError) as e:
                raise InvalidPresenceError(
                    f"Invalid expectedReturnAt {expected_return_at!r}: {e}"
                ) from e

        async with self._lock:
            state = await self._load()
            now = self._now()
            refresh_bookkeeping(state, now, self.config)

            transition = handle_presence_change(state, presence, estimate, now, self.config)
            await self._save()
            return transition

    async def handle_event(self, event: Mapping[str, Any]) -> List[TriggerResult]:
        """
        Dispatch a host inbound event {text?, sticker?, messageId?}.

        Text is processed before the sticker when both are present.
        """
        results = []
        message_id = event.get("messageId")
        if event.get("text"):
            results.append(await self.process_message(event["text"], message_id))
        if event.get("sticker"):
            results.append(await self.process_sticker(event["sticker"], message_id))
        return results

    async def add_sticker_trigger(self, kind: str, sticker_id: str) -> StickerTriggers:
        """Register a sticker id for this workspace (see sticker_triggers)."""
        return await add_sticker_trigger(self.workspace, kind, sticker_id)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_snapshot(self) -> Optional[Dict[str, Any]]:
        """
        Public fields of the in-memory state.

        Never loads or mutates; returns None before the first load.
        """
        if self._state is None:
            return None
        return snapshot_of(self._state)

    async def status(self) -> Dict[str, Any]:
        """Snapshot for tool calls; loads the state first if needed."""
        state = await self.load()
        return snapshot_of(state)


class ManagerRegistry:
    """
    Explicit workspace -> AffectionManager mapping.

    Owned by whatever composes the engine; there is no process-wide default.
    """

    def __init__(self, config: Optional[AffectionConfig] = None, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock
        self._managers: Dict[Path, AffectionManager] = {}

    def get(self, workspace: WorkspacePath) -> AffectionManager:
        """Return the manager for a workspace, creating it on first use."""
        key = Path(workspace).resolve()
        manager = self._managers.get(key)
        if manager is None:
            manager = AffectionManager(key, config=self.config, clock=self.clock)
            self._managers[key] = manager
        return manager

    def forget(self, workspace: WorkspacePath) -> bool:
        """Drop a workspace's manager (its state stays on disk)."""
        return self._managers.pop(Path(workspace).resolve(), None) is not None

    def clear(self) -> None:
        self._managers.clear()

    def workspaces(self) -> List[Path]:
        return list(self._managers)

    def __len__(self) -> int:
        return len(self._managers)

    def __contains__(self, workspace: WorkspacePath) -> bool:
        return Path(workspace).resolve() in self._managers
