"""
Review routes. Mounted both flat (`/reviews`) and nested under a tour
(`/tours/{tour_id}/reviews`); the nested form scopes reads and supplies the
tour for writes.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import restrict_to
from ..errors import NotFound, ValidationError
from ..models import Review, Tour, User
from ..schemas import ReviewCreate, ReviewData, ReviewList, ReviewListResponse, ReviewOut, ReviewResponse
from .handler_factory import delete_one

router = APIRouter(prefix="/api/v1", tags=["reviews"])


def get_all_reviews(db: Session, tour_id: Optional[int] = None) -> List[Review]:
    query = db.query(Review)
    if tour_id is not None:
        query = query.filter(Review.tour_id == tour_id)
    return query.order_by(Review.created_at.desc(), Review.id.desc()).all()


def create_review(db: Session, body: ReviewCreate, tour_id: Optional[int], user: User) -> Review:
    # Allow nested routes: body values win, route and session fill the gaps
    tour_ref = body.tour if body.tour is not None else tour_id
    user_ref = body.user if body.user is not None else user.id
    if tour_ref is None:
        raise ValidationError("Review must belong to a tour.")
    if db.get(Tour, tour_ref) is None:
        raise NotFound("No tour found with that ID")
    if user_ref != user.id and db.get(User, user_ref) is None:
        raise NotFound("No user found with that ID")

    review = Review(review=body.review, rating=body.rating, tour_id=tour_ref, user_id=user_ref)
    db.add(review)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("You have already reviewed this tour.") from exc
    db.refresh(review)
    return review


@router.get("/reviews", response_model=ReviewListResponse)
@router.get("/tours/{tour_id}/reviews", response_model=ReviewListResponse)
def list_reviews(tour_id: Optional[int] = None, db: Session = Depends(get_db)):
    reviews = get_all_reviews(db, tour_id)
    return ReviewListResponse(
        results=len(reviews),
        data=ReviewList(reviews=[ReviewOut.model_validate(r) for r in reviews]),
    )


@router.post("/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
@router.post("/tours/{tour_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def post_review(
    payload: ReviewCreate,
    tour_id: Optional[int] = None,
    user: User = Depends(restrict_to("user")),
    db: Session = Depends(get_db),
):
    review = create_review(db, payload, tour_id, user)
    return ReviewResponse(data=ReviewData(review=ReviewOut.model_validate(review)))


router.add_api_route(
    "/reviews/{id}",
    delete_one(Review),
    methods=["DELETE"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(restrict_to("user", "admin"))],
)
