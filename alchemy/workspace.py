# alchemy/workspace.py
import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from .config import Config
from .resolver import CombinationResolver
from .store import Concept, DiscoveryStore

logger = logging.getLogger(__name__)

LOADING_CONCEPT = Concept(name="Combining...", glyph="⏳")
REJECTION_NOTICE = "These elements refuse to combine!"
RESET_PROMPT = "Are you sure you want to reset all progress? You will lose all discovered elements."


# --- Data models ---
@dataclass(frozen=True)
class WorkspaceToken:
    id: str
    concept: Concept
    x: float
    y: float
    is_loading: bool = False

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "concept": self.concept.to_dict(),
            "x": self.x,
            "y": self.y,
            "is_loading": self.is_loading,
        }


class DropStatus(Enum):
    """What a drag release ended up doing."""
    MOVED = "moved"         # no collision, position committed
    COMBINED = "combined"   # pair replaced by the resolved concept
    REJECTED = "rejected"   # resolver gave nothing, inputs restored
    STALE = "stale"         # token vanished before the drop/result landed


@dataclass
class DropResult:
    status: DropStatus
    token: Optional[WorkspaceToken] = None
    restored: List[WorkspaceToken] = field(default_factory=list)
    discovered: bool = False


class Workspace:
    """
    Tokens placed on the canvas and the combine-in-place flow.

    Drag release -> collision check against non-loading tokens (first within
    the threshold, in insertion order). A hit removes both tokens, parks a
    loading token at the target's position and awaits the resolver; the
    loading token is then replaced in place by the result, or dropped with
    the two inputs restored either side of it.

    All mutation happens on the caller's event loop. Results that arrive for
    a loading token that has since been removed are discarded.
    """

    def __init__(
        self,
        store: DiscoveryStore,
        resolver: CombinationResolver,
        seed: Optional[int] = None,
        on_notice: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.threshold = Config.workspace.COLLISION_THRESHOLD
        self.offset = Config.workspace.ROLLBACK_OFFSET
        self.notices: List[str] = []
        self._on_notice = on_notice
        self._tokens: Dict[str, WorkspaceToken] = {}
        self._rng = np.random.default_rng(Config.core.SEED if seed is None else seed)

    # --- Token operations ---
    def add_token(self, concept: Concept, viewport_width: Optional[int] = None) -> WorkspaceToken:
        """Spawn a token: fixed spot on narrow viewports, jittered near center otherwise."""
        width = Config.workspace.DEFAULT_VIEWPORT if viewport_width is None else viewport_width
        if width < Config.workspace.NARROW_VIEWPORT:
            x, y = Config.workspace.NARROW_SPAWN
        else:
            base_x, base_y = Config.workspace.WIDE_SPAWN
            jitter_x, jitter_y = self._rng.uniform(0.0, Config.workspace.SPAWN_JITTER, size=2)
            x, y = base_x + float(jitter_x), base_y + float(jitter_y)
        return self._place(concept, x, y)

    def remove_token(self, token_id: str) -> bool:
        return self._tokens.pop(token_id, None) is not None

    def clear_workspace(self):
        """Drop every token; inventory and recipes are untouched."""
        self._tokens.clear()

    def reset_all(self, confirm: Callable[[str], bool]) -> bool:
        """Wipe discovery progress after the user confirms. Returns True if it ran."""
        if not confirm(RESET_PROMPT):
            return False
        self._tokens.clear()
        self.store.reset()
        logger.info("Discovery progress reset to seed concepts")
        return True

    def get(self, token_id: str) -> Optional[WorkspaceToken]:
        return self._tokens.get(token_id)

    @property
    def tokens(self) -> List[WorkspaceToken]:
        return list(self._tokens.values())

    def __len__(self) -> int:
        return len(self._tokens)

    # --- Collision ---
    def find_collision(self, token_id: str, x: float, y: float) -> Optional[WorkspaceToken]:
        """First non-loading token (insertion order) strictly within the threshold of (x, y)."""
        candidates = [t for t in self._tokens.values() if t.id != token_id and not t.is_loading]
        if not candidates:
            return None
        coords = np.array([(t.x, t.y) for t in candidates], dtype=np.float64)
        dist = np.hypot(coords[:, 0] - x, coords[:, 1] - y)
        hits = np.flatnonzero(dist < self.threshold)
        if hits.size == 0:
            return None
        return candidates[int(hits[0])]

    async def drop(self, token_id: str, x: float, y: float) -> DropResult:
        """Handle a drag release of `token_id` at (x, y)."""
        token = self._tokens.get(token_id)
        if token is None:
            logger.debug(f"Drop for unknown token {token_id} ignored")
            return DropResult(DropStatus.STALE)

        # A pending token can be moved but never combines
        target = None if token.is_loading else self.find_collision(token_id, x, y)
        if target is None:
            moved = replace(token, x=x, y=y)
            self._tokens[token_id] = moved
            return DropResult(DropStatus.MOVED, token=moved)
        return await self._combine(token, target)

    async def combine(self, dragged_id: str, target_id: str) -> DropResult:
        """Combine two placed tokens directly, as if one were dropped on the other."""
        dragged = self._tokens.get(dragged_id)
        target = self._tokens.get(target_id)
        if dragged is None or target is None or dragged_id == target_id:
            return DropResult(DropStatus.STALE)
        if dragged.is_loading or target.is_loading:
            return DropResult(DropStatus.STALE)
        return await self._combine(dragged, target)

    async def _combine(self, dragged: WorkspaceToken, target: WorkspaceToken) -> DropResult:
        del self._tokens[dragged.id]
        del self._tokens[target.id]
        loading = self._place(LOADING_CONCEPT, target.x, target.y, is_loading=True)

        try:
            result = await self.resolver.combine(dragged.concept, target.concept)
        except asyncio.CancelledError:
            # Nobody will commit this loading token; put the inputs back
            current = self._tokens.pop(loading.id, None)
            if current is not None:
                logger.debug(f"Combine for loading token {loading.id} cancelled, inputs restored")
                self._restore(dragged, target, current)
            raise
        except Exception as exc:
            logger.error(f"Resolver raised for {dragged.concept.name} + {target.concept.name}: {exc!r}")
            result = None

        current = self._tokens.get(loading.id)
        if current is None:
            logger.debug(f"Result for removed loading token {loading.id} discarded")
            return DropResult(DropStatus.STALE)

        if result is None:
            del self._tokens[loading.id]
            restored = self._restore(dragged, target, current)
            self._notify(REJECTION_NOTICE)
            return DropResult(DropStatus.REJECTED, restored=restored)

        discovered = self.store.discover(result)
        resolved = replace(current, concept=result, is_loading=False)
        self._tokens[loading.id] = resolved
        return DropResult(DropStatus.COMBINED, token=resolved, discovered=discovered)

    # --- Internals ---
    def _place(self, concept: Concept, x: float, y: float, is_loading: bool = False) -> WorkspaceToken:
        token = WorkspaceToken(id=str(uuid.uuid4()), concept=concept, x=x, y=y, is_loading=is_loading)
        self._tokens[token.id] = token
        return token

    def _restore(self, dragged: WorkspaceToken, target: WorkspaceToken, at: WorkspaceToken) -> List[WorkspaceToken]:
        """Put both inputs back either side of where the loading token stood."""
        return [
            self._place(dragged.concept, at.x - self.offset, at.y),
            self._place(target.concept, at.x + self.offset, at.y),
        ]

    def _notify(self, message: str):
        self.notices.append(message)
        if self._on_notice is not None:
            self._on_notice(message)
