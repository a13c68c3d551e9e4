"""SQL-backed listing directory.

Claims and reopens are single conditional UPDATE statements; whoever sees
rowcount == 1 owns the transition. No row locks are held across scoring.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update, and_, exists
from sqlalchemy.orm import Session

from ...domain.listings import OfferStatus, NeedStatus
from ...integrations.ports import ListingDirectoryPort
from ...models import Offer, Need, utcnow


class SqlListingDirectory(ListingDirectoryPort):
    """Listing directory over the offer and need tables."""

    def __init__(self, db: Session):
        """Initialize directory with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def get_offer(self, offer_id: UUID) -> Optional[Offer]:
        query = select(Offer).where(Offer.id == offer_id).execution_options(populate_existing=True)
        return self.db.execute(query).scalar_one_or_none()

    def get_need(self, need_id: UUID) -> Optional[Need]:
        query = select(Need).where(Need.id == need_id).execution_options(populate_existing=True)
        return self.db.execute(query).scalar_one_or_none()

    def active_offers(self, community_id: UUID, limit: Optional[int] = None) -> List[Offer]:
        """Get active, unexpired offers of a community.

        Args:
            community_id: Community UUID
            limit: Optional cap on the number of offers returned

        Returns:
            Offers ordered oldest first (created_at, then id)
        """
        query = (
            select(Offer)
            .where(
                and_(
                    Offer.community_id == community_id,
                    Offer.status == OfferStatus.ACTIVE.value,
                    Offer.expiry_at > utcnow(),
                )
            )
            .order_by(Offer.created_at, Offer.id)
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars().all())

    def active_needs(self, community_id: UUID, limit: Optional[int] = None) -> List[Need]:
        query = (
            select(Need)
            .where(
                and_(
                    Need.community_id == community_id,
                    Need.status == NeedStatus.ACTIVE.value,
                )
            )
            .order_by(Need.created_at, Need.id)
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars().all())

    def claim_offer(self, offer_id: UUID) -> bool:
        now = utcnow()
        statement = (
            update(Offer)
            .where(
                and_(
                    Offer.id == offer_id,
                    Offer.status == OfferStatus.ACTIVE.value,
                    Offer.expiry_at > now,
                )
            )
            .values(status=OfferStatus.MATCHED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(statement).rowcount == 1

    def claim_need(self, need_id: UUID) -> bool:
        statement = (
            update(Need)
            .where(and_(Need.id == need_id, Need.status == NeedStatus.ACTIVE.value))
            .values(status=NeedStatus.MATCHED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(statement).rowcount == 1

    def reopen_offer(self, offer_id: UUID) -> bool:
        statement = (
            update(Offer)
            .where(and_(Offer.id == offer_id, Offer.status == OfferStatus.MATCHED.value))
            .values(status=OfferStatus.ACTIVE.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(statement).rowcount == 1

    def reopen_need(self, need_id: UUID) -> bool:
        statement = (
            update(Need)
            .where(and_(Need.id == need_id, Need.status == NeedStatus.MATCHED.value))
            .values(status=NeedStatus.ACTIVE.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(statement).rowcount == 1

    def communities_with_active_listings(self) -> List[UUID]:
        """Get communities worth sweeping.

        Returns:
            Community ids with at least one active offer and one active need
        """
        has_need = exists().where(
            and_(
                Need.community_id == Offer.community_id,
                Need.status == NeedStatus.ACTIVE.value,
            )
        )
        query = (
            select(Offer.community_id)
            .where(
                and_(
                    Offer.status == OfferStatus.ACTIVE.value,
                    Offer.expiry_at > utcnow(),
                    has_need,
                )
            )
            .distinct()
            .order_by(Offer.community_id)
        )
        return list(self.db.execute(query).scalars().all())
