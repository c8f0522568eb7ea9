"""
Request/response schemas for the reminders API (camelCase on the wire)
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ReminderCreate(BaseModel):
    """Schema for creating a reminder; ``fecha`` defaults to now"""
    model_config = ConfigDict(populate_by_name=True)

    titulo: Optional[str] = None
    fecha: Optional[datetime] = None
    descripcion: Optional[str] = None
    frecuencia: Optional[str] = None
    intervalo_personalizado: Optional[int] = Field(default=None, alias="intervaloPersonalizado", ge=1)
    tipo: Optional[str] = None
    dosis: Optional[str] = None
    unidad: Optional[str] = None
    cantidad_disponible: Optional[int] = Field(default=None, alias="cantidadDisponible", ge=0)


class ReminderUpdate(BaseModel):
    """Editable fields; status flags change only through processing or /complete"""
    model_config = ConfigDict(populate_by_name=True)

    titulo: Optional[str] = None
    fecha: Optional[datetime] = None
    descripcion: Optional[str] = None
    frecuencia: Optional[str] = None
    intervalo_personalizado: Optional[int] = Field(default=None, alias="intervaloPersonalizado", ge=1)
    tipo: Optional[str] = None
    dosis: Optional[str] = None
    unidad: Optional[str] = None
    cantidad_disponible: Optional[int] = Field(default=None, alias="cantidadDisponible", ge=0)


class ReminderComplete(BaseModel):
    completed: bool


class ReminderRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    user_id: int = Field(alias="userId")
    tipo: Optional[str] = None
    titulo: Optional[str] = None
    descripcion: Optional[str] = None
    fecha: datetime
    frecuencia: Optional[str] = None
    intervalo_personalizado: Optional[int] = Field(default=None, alias="intervaloPersonalizado")
    horarios: List[str] = Field(default_factory=list)
    dosis: Optional[str] = None
    unidad: Optional[str] = None
    cantidad_disponible: Optional[int] = Field(default=None, alias="cantidadDisponible")
    nombre_persona: Optional[str] = Field(default=None, alias="nombrePersona")
    completed: bool
    sent: bool
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    # Display values in the configured timezone
    fecha_formateada: str = Field(alias="fechaFormateada")
    hora_formateada: str = Field(alias="horaFormateada")
    fecha_iso: Optional[str] = Field(default=None, alias="fechaISO")


class ScanResponse(BaseModel):
    message: str
    enviados: int
