"""
Risk Engine - Flag Store.

============================================================
PURPOSE
============================================================
Append-and-filter collection of raised flags.

- add: append a flag (never replaced, never deleted)
- list_flags: filter by tier, entity type, resolved state
  and booth; newest first
- resolve: one-way transition, first resolver wins

============================================================
STORAGE
============================================================
FlagStore is a Protocol so a durable backend can replace
InMemoryFlagStore without touching the scorers or services.

============================================================
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from core.clock import ClockProtocol, get_clock
from core.exceptions import FlagNotFoundError, ValidationError
from .indexes import BoothDocumentIndex
from .types import EntityType, Flag, RiskTier

logger = logging.getLogger(__name__)


class FlagStore(Protocol):
    """Storage contract for flags."""

    def add(self, flag: Flag) -> Flag:
        ...

    def get(self, flag_id: str) -> Flag:
        ...

    def list_flags(
        self,
        risk_tier: Optional[RiskTier] = None,
        entity_type: Optional[EntityType] = None,
        resolved: Optional[bool] = None,
        booth_id: Optional[str] = None,
    ) -> List[Flag]:
        ...

    def resolve(self, flag_id: str, resolved_by: str) -> Tuple[Flag, bool]:
        ...


class InMemoryFlagStore:
    """
    Process-local FlagStore.

    One lock guards the whole map, so concurrent resolves of
    the same flag are serialized and the loser sees the flag
    already resolved.
    """

    def __init__(
        self,
        booth_index: Optional[BoothDocumentIndex] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Args:
            booth_index: Booth -> document numbers, used by booth-scoped listings
            clock: Source of resolution timestamps
        """
        self._flags: Dict[str, Flag] = {}
        self._sequence: Dict[str, int] = {}
        self._booth_index = booth_index if booth_index is not None else BoothDocumentIndex()
        self._clock = clock or get_clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._flags)

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def add(self, flag: Flag) -> Flag:
        with self._lock:
            if flag.flag_id in self._flags:
                return self._flags[flag.flag_id]
            self._sequence[flag.flag_id] = len(self._sequence)
            self._flags[flag.flag_id] = flag
        logger.info(
            f"Flag raised: id={flag.flag_id} rule={flag.rule_id.value} "
            f"tier={flag.risk_tier.value} entity={flag.entity_type.value}:{flag.entity_id}"
        )
        return flag

    def add_many(self, flags: Iterable[Flag]) -> List[Flag]:
        return [self.add(flag) for flag in flags]

    def resolve(self, flag_id: str, resolved_by: str) -> Tuple[Flag, bool]:
        """
        Mark a flag resolved.

        Returns:
            (flag, newly_resolved). Re-resolving returns the flag
            untouched with newly_resolved=False.

        Raises:
            FlagNotFoundError: unknown flag id
            ValidationError: blank resolver identity
        """
        if not resolved_by or not str(resolved_by).strip():
            raise ValidationError("resolved_by required", fields=["resolved_by"])

        with self._lock:
            flag = self._flags.get(flag_id)
            if flag is None:
                raise FlagNotFoundError(flag_id)
            if flag.resolved:
                logger.info(
                    f"Flag already resolved: id={flag_id} by={flag.resolved_by} "
                    f"ignored_resolver={resolved_by}"
                )
                return flag, False
            flag.resolved = True
            flag.resolved_by = resolved_by
            flag.resolved_at = self._clock.now()

        logger.info(f"Flag resolved: id={flag_id} by={resolved_by}")
        return flag, True

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def get(self, flag_id: str) -> Flag:
        with self._lock:
            flag = self._flags.get(flag_id)
        if flag is None:
            raise FlagNotFoundError(flag_id)
        return flag

    def list_flags(
        self,
        risk_tier: Optional[RiskTier] = None,
        entity_type: Optional[EntityType] = None,
        resolved: Optional[bool] = None,
        booth_id: Optional[str] = None,
    ) -> List[Flag]:
        with self._lock:
            flags = list(self._flags.values())
            sequence = dict(self._sequence)

        if risk_tier is not None:
            flags = [f for f in flags if f.risk_tier == risk_tier]
        if entity_type is not None:
            flags = [f for f in flags if f.entity_type == entity_type]
        if resolved is not None:
            flags = [f for f in flags if f.resolved == resolved]
        if booth_id:
            booth_epics = self._booth_index.documents_for(booth_id)
            flags = [f for f in flags if self._belongs_to_booth(f, booth_id, booth_epics)]

        return sorted(
            flags,
            key=lambda f: (f.created_at, sequence[f.flag_id]),
            reverse=True,
        )

    @staticmethod
    def _belongs_to_booth(flag: Flag, booth_id: str, booth_epics) -> bool:
        if flag.entity_type == EntityType.BOOTH:
            return flag.entity_id == booth_id
        if flag.entity_type == EntityType.FORM17A:
            return booth_id in flag.booth_ids or flag.entity_id in booth_epics
        return False
