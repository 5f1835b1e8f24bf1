import logging
from typing import Optional

from tablequeue.core.errors import DomainValidationError, NotFoundError
from tablequeue.db.base import utcnow
from tablequeue.models import DishReview, MenuItem, Organization
from tablequeue.services.base import ScopedService
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class ReviewService(ScopedService):
    """Customer ratings of menu items. Both operations are public."""

    def _menu_item(self, menu_item_id: int) -> MenuItem:
        item = self.db.query(MenuItem).join(
            Organization, MenuItem.organization_id == Organization.id
        ).filter(
            MenuItem.id == menu_item_id,
            Organization.is_active.is_(True),
        ).first()
        if item is None:
            raise NotFoundError("Menu item", menu_item_id)
        return item

    def create_review(self, menu_item_id: int, rating: int, comment: Optional[str] = None,
                      customer_name: Optional[str] = None) -> DishReview:
        item = self._menu_item(menu_item_id)
        if not item.available:
            raise DomainValidationError(f"{item.name} is not on the menu right now")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise DomainValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

        review = DishReview(
            organization_id=item.organization_id,
            menu_item_id=item.id,
            rating=rating,
            comment=comment.strip() if comment and comment.strip() else None,
            customer_name=customer_name.strip() if customer_name and customer_name.strip() else None,
            created_at=utcnow(),
        )
        self.db.add(review)
        self._commit("Review")
        self.db.refresh(review)

        logger.info(f"Review {review.id} ({rating}/5) for menu item {item.id}")
        self._publish(
            EventType.REVIEW_CREATED,
            {"review_id": review.id, "menu_item_id": item.id, "rating": rating},
            organization_id=item.organization_id,
        )
        return review

    def list_reviews(self, menu_item_id: int) -> dict:
        """Newest reviews first, with the average rounded to one decimal (0 when unrated)."""
        item = self._menu_item(menu_item_id)
        reviews = self.db.query(DishReview).filter(
            DishReview.menu_item_id == item.id
        ).order_by(DishReview.created_at.desc(), DishReview.id.desc()).all()
        average = round(sum(r.rating for r in reviews) / len(reviews), 1) if reviews else 0
        return {"reviews": reviews, "average_rating": average, "total": len(reviews)}
