# bytestore/api/routes/reviews.py
import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bytestore.api.deps import get_current_principal
from bytestore.api.schemas.reviews import ReviewCreate, ReviewUpdate
from bytestore.core.errors import Conflict, Forbidden, InvalidInput, NotFound
from bytestore.core.security import Principal, is_admin_or_owner
from bytestore.database import commit, get_reviews_db
from bytestore.db.pagination import page_response, paginate
from bytestore.models.review import Review

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])

SORT_COLUMNS = {
    "fecha": Review.created_at,
    "calificacion": Review.rating,
}


def _sorted(stmt, sort: str, order: str):
    column = SORT_COLUMNS[sort]
    if order == "ASC":
        return stmt.order_by(column.asc(), Review.id.asc())
    return stmt.order_by(column.desc(), Review.id.desc())


def _load(session: Session, review_id: int) -> Review:
    review = session.get(Review, review_id)
    if not review:
        raise NotFound("Review not found")
    return review


@router.post("", status_code=status.HTTP_201_CREATED)
def create_review(
    payload: ReviewCreate = Body(...),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_reviews_db),
) -> Dict[str, Any]:
    """
    Create a review for a product. Body:
    { "producto_id": int, "calificacion": 1-5, "comentario"?: "text" }
    A user can review a product only once.
    """
    existing = session.scalar(
        select(Review.id).where(Review.product_id == payload.producto_id, Review.user_id == principal.id)
    )
    if existing:
        raise Conflict("You have already reviewed this product", calificacion_id=existing)

    review = Review(
        product_id=payload.producto_id,
        user_id=principal.id,
        rating=payload.calificacion,
        comment=payload.comentario,
    )
    session.add(review)
    try:
        session.commit()
    except IntegrityError:
        # unique (product_id, user_id) hit by a concurrent request
        session.rollback()
        raise Conflict("You have already reviewed this product")
    logger.info("Review %s created for product %s by %s", review.id, review.product_id, principal.id)
    return {"message": "Review created successfully", "data": review.to_dict()}


@router.get("")
def list_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    producto_id: Optional[int] = Query(None, gt=0),
    usuario_id: Optional[str] = Query(None),
    calificacion_min: Optional[int] = Query(None, ge=1, le=5),
    calificacion_max: Optional[int] = Query(None, ge=1, le=5),
    sort: Literal["fecha", "calificacion"] = Query("fecha"),
    order: Literal["ASC", "DESC"] = Query("DESC"),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_reviews_db),
) -> Dict[str, Any]:
    if calificacion_min is not None and calificacion_max is not None and calificacion_min > calificacion_max:
        raise InvalidInput("calificacion_min cannot be greater than calificacion_max")

    stmt = select(Review)
    if producto_id is not None:
        stmt = stmt.where(Review.product_id == producto_id)
    if usuario_id:
        stmt = stmt.where(Review.user_id == usuario_id.strip())
    if calificacion_min is not None:
        stmt = stmt.where(Review.rating >= calificacion_min)
    if calificacion_max is not None:
        stmt = stmt.where(Review.rating <= calificacion_max)

    result = paginate(session, _sorted(stmt, sort, order), page, limit)
    return page_response(result, [r.to_dict() for r in result["items"]])


@router.get("/product/{producto_id}")
def list_product_reviews(
    producto_id: int = Path(..., gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: Literal["fecha", "calificacion"] = Query("fecha"),
    order: Literal["ASC", "DESC"] = Query("DESC"),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_reviews_db),
) -> Dict[str, Any]:
    """Reviews of one product plus its average rating (`promedio`, 0 when unrated)."""
    stmt = select(Review).where(Review.product_id == producto_id)
    result = paginate(session, _sorted(stmt, sort, order), page, limit)

    average = session.scalar(select(func.avg(Review.rating)).where(Review.product_id == producto_id))
    out = page_response(result, [r.to_dict() for r in result["items"]])
    out["promedio"] = round(float(average), 2) if average is not None else 0.0
    return out


@router.get("/{review_id}")
def get_review(
    review_id: int = Path(..., gt=0),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_reviews_db),
) -> Dict[str, Any]:
    return {"data": _load(session, review_id).to_dict()}


@router.put("/{review_id}")
def update_review(
    review_id: int = Path(..., gt=0),
    payload: ReviewUpdate = Body(...),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_reviews_db),
) -> Dict[str, Any]:
    review = _load(session, review_id)
    if not is_admin_or_owner(principal, review.user_id):
        raise Forbidden("Not allowed to update this review")
    if payload.calificacion is None and payload.comentario is None:
        raise InvalidInput("No fields to update")

    if payload.calificacion is not None:
        review.rating = payload.calificacion
    if payload.comentario is not None:
        review.comment = payload.comentario
    commit(session, "update review", review_id=review_id)
    return {"message": "Review updated successfully", "data": review.to_dict()}


@router.delete("/{review_id}")
def delete_review(
    review_id: int = Path(..., gt=0),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_reviews_db),
) -> Dict[str, Any]:
    review = _load(session, review_id)
    if not is_admin_or_owner(principal, review.user_id):
        raise Forbidden("Not allowed to delete this review")
    session.delete(review)
    commit(session, "delete review", review_id=review_id)
    return {"message": "Review deleted successfully"}
