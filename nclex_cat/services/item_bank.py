"""
Item bank accessor.

Read access to calibrated items plus the shared exposure counter. The counter
is only ever changed through a single atomic UPDATE so concurrent sessions on
any number of workers never lose an increment. The increment joins the
caller's transaction; it becomes durable when the caller commits the turn.
"""
import logging
from typing import Collection, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from nclex_cat.core.cat.errors import ItemBankUnavailable
from nclex_cat.core.cat.exposure_control import ItemCandidate
from nclex_cat.core.cat.item_selection import rank_candidates
from nclex_cat.core.db_error_handling import handle_db_error
from nclex_cat.models.models import Item, NCLEXCategory

logger = logging.getLogger(__name__)


class ItemBank:
    """Item bank backed by the ``items`` table. Implements ExposureCounter."""

    def __init__(self, db: Session):
        self.db = db

    def eligible_items(
        self,
        exclude_ids: Collection[int] = (),
        categories: Optional[Iterable[NCLEXCategory]] = None,
    ) -> List[Item]:
        """
        Active items not in ``exclude_ids``, optionally limited to categories.

        Ordered by id so downstream ranking sees a stable input order.
        """
        with handle_db_error(self.db, "load eligible items"):
            stmt = select(Item).where(Item.is_active.is_(True))
            if exclude_ids:
                stmt = stmt.where(Item.id.notin_(list(exclude_ids)))
            if categories is not None:
                stmt = stmt.where(Item.category.in_(list(categories)))
            return list(self.db.scalars(stmt.order_by(Item.id)).all())

    def most_informative(
        self,
        theta: float,
        categories: Optional[Iterable[NCLEXCategory]] = None,
        exclude_ids: Collection[int] = (),
        limit: int = 5,
    ) -> List[ItemCandidate]:
        """The ``limit`` most informative eligible items at theta."""
        items = self.eligible_items(exclude_ids=exclude_ids, categories=categories)
        return rank_candidates(items, theta)[:limit]

    def get_item(self, item_id: int) -> Optional[Item]:
        with handle_db_error(self.db, "load item"):
            return self.db.get(Item, item_id)

    def get_items(self, item_ids: Collection[int]) -> List[Item]:
        """Items for the given ids, in the order requested. Unknown ids are skipped."""
        if not item_ids:
            return []
        with handle_db_error(self.db, "load items"):
            rows = self.db.scalars(select(Item).where(Item.id.in_(list(item_ids)))).all()
        by_id = {item.id: item for item in rows}
        return [by_id[i] for i in item_ids if i in by_id]

    def record_administration(self, item_id: int) -> int:
        """
        Atomically increment the item's ``times_administered``.

        Does not commit. Returns the new count as seen by this transaction.

        Raises:
            ItemBankUnavailable: If the item does not exist or the store fails.
        """
        with handle_db_error(self.db, "record item administration"):
            result = self.db.execute(
                update(Item)
                .where(Item.id == item_id)
                .values(times_administered=Item.times_administered + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ItemBankUnavailable(
                    f"Item {item_id} not found in the item bank",
                    context={"item_id": item_id},
                )
            count = self.db.scalar(
                select(Item.times_administered).where(Item.id == item_id)
            )

        logger.debug(f"Item {item_id} administered {count} times")
        return int(count)
