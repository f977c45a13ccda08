# bytestore/models/review.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint

from bytestore.core.timestamps import to_iso
from bytestore.database import Base


class Review(Base):
    """A product rating left by a user. One review per (product, user)."""
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_reviews_product_user"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(String(1000), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calificacion_id": self.id,
            "producto_id": self.product_id,
            "usuario_id": self.user_id,
            "nombre_usuario": "Usuario",
            "calificacion": self.rating,
            "comentario": self.comment,
            "fecha": to_iso(self.created_at),
        }


REVIEW_TABLES = [Review.__table__]
