from typing import Optional

from pydantic import BaseModel, Field, conint, constr

COMMENT_PATTERN = r"^[A-Za-z0-9ÁÉÍÓÚáéíóúÑñ\s\.,;:!?¿¡()\"'-]+$"

Comment = constr(strip_whitespace=True, min_length=10, max_length=1000, pattern=COMMENT_PATTERN)


class ReviewCreate(BaseModel):
    producto_id: conint(gt=0) = Field(..., description="Reviewed product")
    calificacion: conint(ge=1, le=5) = Field(..., description="Rating between 1 and 5")
    comentario: Optional[Comment] = None


class ReviewUpdate(BaseModel):
    calificacion: Optional[conint(ge=1, le=5)] = None
    comentario: Optional[Comment] = None
