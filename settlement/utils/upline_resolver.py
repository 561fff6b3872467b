# settlement/utils/upline_resolver.py
"""
Referral graph accessor.
Resolves up to two upline levels with a per-run lookup cache.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from models.user import User
from settlement.utils.ids import normalize_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRef:
    """Detached snapshot of the user fields settlement needs."""
    id: str
    referredBy: Optional[str]
    name: Optional[str]
    isActive: bool


@dataclass(frozen=True)
class Upline:
    level1: Optional[UserRef] = None
    level2: Optional[UserRef] = None


class UplineResolver:
    """
    Two-level upline lookup.

    The cache belongs to the resolver instance, so a batch job that
    creates one resolver per run never sees users from a previous run.
    Cycles deeper than two levels are irrelevant here; a direct
    self-reference is treated as "no upline".
    """

    def __init__(self, session: Session):
        self.session = session
        self._cache: Dict[str, Optional[UserRef]] = {}

    def loadUser(self, userId: Any) -> Optional[UserRef]:
        """
        Load user snapshot by any id representation.

        Args:
            userId: Anything normalize_id() accepts

        Returns:
            UserRef or None when the id is invalid or the user is missing
        """
        normalized = normalize_id(userId)
        if normalized is None:
            return None

        if normalized in self._cache:
            return self._cache[normalized]

        user = self.session.query(User).populate_existing().filter_by(userID=normalized).first()
        ref = None
        if user:
            ref = UserRef(
                id=user.userID,
                referredBy=normalize_id(user.referredBy),
                name=user.name,
                isActive=bool(user.isActive),
            )

        self._cache[normalized] = ref
        return ref

    def _sponsorOf(self, user: UserRef) -> Optional[UserRef]:
        if not user.referredBy or user.referredBy == user.id:
            return None

        sponsor = self.loadUser(user.referredBy)
        if sponsor is None:
            logger.warning(f"Sponsor {user.referredBy} of user {user.id} not found")
        return sponsor

    def resolveUpline(self, userId: Any) -> Upline:
        """
        Resolve level-1 and level-2 sponsors.

        Returns:
            Upline with None for every level that does not exist
        """
        user = self.loadUser(userId)
        if user is None:
            return Upline()

        level1 = self._sponsorOf(user)
        if level1 is None:
            return Upline()

        level2 = self._sponsorOf(level1)

        # A two-member loop would pay the depositor as its own level-2
        if level2 is not None and level2.id == user.id:
            logger.error(f"Referral cycle detected between {user.id} and {level1.id}")
            level2 = None

        return Upline(level1=level1, level2=level2)

    def clearCache(self) -> None:
        self._cache.clear()
