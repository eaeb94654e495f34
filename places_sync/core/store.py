"""Storage port used by every pipeline component."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ContextManager, Dict, List, Optional, Sequence, Tuple

from places_sync.models import EXTERNAL_ID_FIELDS, MATCHABLE_STATUSES, Place


SYNC_LOCK_NAME = "places-sync"


class SyncRunInProgress(RuntimeError):
    """Raised when another sync run already holds the run lock."""


@dataclass(frozen=True)
class PlaceFilter:
    """Conditions for a bulk update; every set condition must hold."""

    missing_google_place_id: bool = False
    verified_before: Optional[datetime] = None
    status_not_in: Tuple[str, ...] = ()

    def matches(self, place: Place) -> bool:
        if self.missing_google_place_id and place.google_place_id:
            return False
        if self.verified_before is not None:
            # Never-verified rows age from their creation time.
            reference = place.last_verified_at or place.created_at
            if reference is None or reference >= self.verified_before:
                return False
        if self.status_not_in and place.status in self.status_not_in:
            return False
        return True


def check_external_id_field(column: str) -> str:
    if column not in EXTERNAL_ID_FIELDS:
        raise ValueError(f"Unknown external id field: {column}")
    return column


class PlaceStore:
    """Persistence operations the pipeline relies on.

    Implementations must read current state on every call: the matcher relies
    on seeing merges committed earlier in the same run.
    """

    def find_by_id(self, place_id: str) -> Optional[Place]:
        raise NotImplementedError

    def find_by_external_id(
        self,
        column: str,
        value: str,
        *,
        exclude_id: Optional[str] = None,
        statuses: Sequence[str] = MATCHABLE_STATUSES,
    ) -> Optional[Place]:
        raise NotImplementedError

    def find_by_name(self, name: str) -> List[Place]:
        """Non-merged places whose name equals ``name`` case-insensitively."""
        raise NotImplementedError

    def select_missing_external_ids(self, limit: int) -> List[Place]:
        raise NotImplementedError

    def select_with_google_id(self) -> List[Place]:
        raise NotImplementedError

    def list_places(self) -> List[Place]:
        raise NotImplementedError

    def list_active(self) -> List[Place]:
        raise NotImplementedError

    def upsert(self, place: Place) -> Place:
        raise NotImplementedError

    def merge(self, loser: Place, winner: Place) -> Place:
        """Write the tombstoned ``loser`` then ``winner`` as one unit; return the stored winner.

        Either both rows are written or neither is.
        """
        raise NotImplementedError

    def bulk_update_where(self, where: PlaceFilter, values: Dict[str, Any]) -> List[str]:
        """Apply ``values`` to every row matching ``where``; return updated ids."""
        raise NotImplementedError

    def run_lock(self, name: str = SYNC_LOCK_NAME) -> ContextManager[None]:
        """Context manager held for a whole run; raises SyncRunInProgress if taken."""
        raise NotImplementedError
