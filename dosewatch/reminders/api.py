from typing import List
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from dosewatch.api.deps import get_current_user_id, get_db, get_runtime, verify_api_key_dependency
from .exceptions import NoDosesLeft, RecipientNotFound, ReminderAlreadySent
from .formatting import format_fecha_hora, format_fecha_iso
from .models import Reminder
from .runtime import ReminderRuntime
from .schemas import ReminderComplete, ReminderCreate, ReminderRead, ReminderUpdate, ScanResponse
from .service import ReminderService


router = APIRouter()

NOT_FOUND = "Recordatorio no encontrado"


def _to_read(r: Reminder, with_iso: bool = False) -> ReminderRead:
    fecha, hora = format_fecha_hora(r.fecha)
    return ReminderRead(
        id=r.id,
        user_id=r.user_id,
        tipo=r.tipo,
        titulo=r.titulo,
        descripcion=r.descripcion,
        fecha=r.fecha,
        frecuencia=r.frecuencia,
        intervalo_personalizado=r.intervalo_personalizado,
        horarios=list(r.horarios or []),
        dosis=r.dosis,
        unidad=r.unidad,
        cantidad_disponible=r.cantidad_disponible,
        nombre_persona=r.nombre_persona,
        completed=r.completed,
        sent=r.sent,
        created_at=r.created_at,
        updated_at=r.updated_at,
        fecha_formateada=fecha,
        hora_formateada=hora,
        fecha_iso=format_fecha_iso(r.fecha) if with_iso else None,
    )


def _service(db: Session, runtime: ReminderRuntime) -> ReminderService:
    return ReminderService(db, scheduler=runtime.scheduler)


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "reminders"}


@router.post("/ejecutar", response_model=ScanResponse, dependencies=[Depends(verify_api_key_dependency)])
def run_due_window_endpoint(
    db: Session = Depends(get_db),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    """Entry point for an external cron ping; reconciles the current due window."""
    result = runtime.processor.scan(db)
    return ScanResponse(message=f"Se enviaron {result.processed} recordatorios", enviados=result.processed)


@router.post("/", response_model=ReminderRead, status_code=201)
def create_reminder_endpoint(
    payload: ReminderCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    try:
        r = _service(db, runtime).create_reminder(user_id, payload)
    except RecipientNotFound as e:
        raise HTTPException(status_code=400, detail=e.reason)
    return _to_read(r)


@router.get("/", response_model=List[ReminderRead])
def list_reminders_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return [_to_read(r) for r in ReminderService(db).list_reminders(user_id)]


@router.get("/{reminder_id}", response_model=ReminderRead)
def get_reminder_endpoint(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    r = ReminderService(db).get_reminder(user_id, reminder_id)
    if not r:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return _to_read(r, with_iso=True)


@router.patch("/{reminder_id}", response_model=ReminderRead)
def update_reminder_endpoint(
    reminder_id: int,
    payload: ReminderUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    try:
        r = _service(db, runtime).update_reminder(user_id, reminder_id, payload)
    except ReminderAlreadySent as e:
        raise HTTPException(status_code=400, detail=e.reason)
    if not r:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return _to_read(r)


@router.delete("/{reminder_id}", status_code=204)
def delete_reminder_endpoint(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    if not _service(db, runtime).delete_reminder(user_id, reminder_id):
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return Response(status_code=204)


@router.patch("/{reminder_id}/complete", response_model=ReminderRead)
def complete_reminder_endpoint(
    reminder_id: int,
    payload: ReminderComplete,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    try:
        r = _service(db, runtime).set_completed(user_id, reminder_id, payload.completed)
    except NoDosesLeft as e:
        raise HTTPException(status_code=400, detail=e.reason)
    if not r:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return _to_read(r)
