from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, constr, field_validator

from bytestore.core.state_machine import OrderState
from bytestore.core.timestamps import parse_iso

ADDRESS_PATTERN = r"^[A-Za-z0-9ÁÉÍÓÚáéíóúÑñ\s\.,#°-]+$"
FULL_NAME_PATTERN = r"^[A-Za-zÁÉÍÓÚáéíóúÑñ\s]+$"
MAX_LINE_QUANTITY = 100


class OrderLineIn(BaseModel):
    producto_id: int = Field(..., gt=0, description="Product identifier")
    cantidad: int = Field(..., gt=0, le=MAX_LINE_QUANTITY, description="Quantity ordered")
    precio: float = Field(..., gt=0, description="Unit price at time of ordering")
    descuento: float = Field(0, ge=0, le=100, description="Discount percentage")
    nombre: Optional[constr(strip_whitespace=True, min_length=1, max_length=300)] = None
    marca: Optional[constr(strip_whitespace=True, min_length=1, max_length=100)] = None
    modelo: Optional[constr(strip_whitespace=True, min_length=1, max_length=100)] = None
    imagen: Optional[HttpUrl] = None


class OrderCreate(BaseModel):
    user_id: constr(strip_whitespace=True, min_length=1) = Field(..., description="Owner of the order")
    correo_usuario: EmailStr
    direccion: constr(strip_whitespace=True, min_length=10, max_length=500, pattern=ADDRESS_PATTERN)
    nombre_completo: constr(strip_whitespace=True, min_length=6, max_length=200, pattern=FULL_NAME_PATTERN)
    productos: List[OrderLineIn] = Field(..., min_length=1, max_length=50)


class OrderUpdate(BaseModel):
    estado: Optional[OrderState] = None
    direccion: Optional[constr(strip_whitespace=True, min_length=10, max_length=500, pattern=ADDRESS_PATTERN)] = None
    fecha_entrega: Optional[datetime] = None
    motivo: Optional[constr(min_length=1, max_length=500)] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("fecha_entrega", mode="before")
    @classmethod
    def _parse_fecha_entrega(cls, v):
        return None if v is None else parse_iso(v)


class OrderLineUpdate(BaseModel):
    cantidad: Optional[int] = Field(None, gt=0, le=MAX_LINE_QUANTITY)
    precio: Optional[float] = Field(None, gt=0)
    descuento: Optional[float] = Field(None, ge=0, le=100)
