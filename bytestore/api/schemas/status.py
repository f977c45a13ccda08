from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator

from bytestore.core.state_machine import OrderState
from bytestore.core.timestamps import parse_iso


class StatusUpdate(BaseModel):
    estado: OrderState = Field(..., description="Target state")
    motivo: Optional[constr(min_length=1, max_length=500)] = Field(None, description="Optional reason")
    fecha_entrega: Optional[datetime] = Field(
        None, description="ISO-8601 delivery timestamp; only used when moving to 'delivered'"
    )

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("fecha_entrega", mode="before")
    @classmethod
    def _parse_fecha_entrega(cls, v):
        # only ISO-8601 strings are accepted, not epoch numbers
        return None if v is None else parse_iso(v)


class CancelRequest(BaseModel):
    motivo: constr(strip_whitespace=True, min_length=1, max_length=500) = Field(..., description="Cancellation reason")
