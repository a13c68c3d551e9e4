"""Reward rule lookup."""

import logging
from typing import Dict, Optional

from sqlalchemy import select, and_
from sqlalchemy.orm import Session

from ..matching.errors import UnknownRewardSourceError
from ..models import RewardRule

logger = logging.getLogger(__name__)


class RewardRuleTable:
    """Resolve reward amounts per source type.

    An active reward_rule row wins; otherwise the configured fallback is
    used. Sources with neither raise UnknownRewardSourceError.
    """

    def __init__(self, db: Session, defaults: Optional[Dict[str, int]] = None):
        self.db = db
        self.defaults = dict(defaults or {})

    def lookup(self, source_type: str) -> int:
        """Get the reward amount for a source type.

        Args:
            source_type: Reward source (e.g. match_closed_giver)

        Returns:
            int: Amount to award

        Raises:
            UnknownRewardSourceError: If no active rule and no fallback exists
        """
        query = select(RewardRule.amount).where(
            and_(RewardRule.source_type == source_type, RewardRule.is_active.is_(True))
        )
        amount = self.db.execute(query).scalar_one_or_none()
        if amount is not None:
            return int(amount)

        if source_type in self.defaults:
            logger.debug(f"No active reward rule for {source_type}, using fallback")
            return self.defaults[source_type]

        raise UnknownRewardSourceError(source_type)
