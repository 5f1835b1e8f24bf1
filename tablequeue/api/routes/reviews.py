"""Dish review routes (customer-facing, no auth)."""

from fastapi import APIRouter, Request, status

from tablequeue.api.deps import Bus
from tablequeue.core.rate_limit import PUBLIC_WRITE_LIMIT, limiter
from tablequeue.db.session import DbSession
from tablequeue.schemas.restaurant import DishReviewCreate, DishReviewList, DishReviewResponse
from tablequeue.services.review_service import ReviewService

router = APIRouter()


@router.post("", response_model=DishReviewResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(PUBLIC_WRITE_LIMIT)
def create_review(request: Request, data: DishReviewCreate, db: DbSession, bus: Bus):
    return ReviewService(db, bus).create_review(
        data.menu_item_id, data.rating, comment=data.comment, customer_name=data.customer_name
    )


@router.get("/{menu_item_id}", response_model=DishReviewList)
def list_reviews(menu_item_id: int, db: DbSession, bus: Bus):
    """Reviews of one dish, newest first, with the average rating."""
    result = ReviewService(db, bus).list_reviews(menu_item_id)
    return DishReviewList.model_validate(result, from_attributes=True)
