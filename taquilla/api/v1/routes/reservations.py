from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taquilla.api.deps import CurrentUser, get_current_user, require_roles
from taquilla.db.session import get_db
from taquilla.db.transaction import retry_on_contention
from taquilla.schemas.reservation import ReservationCreate, ReservationOut, reservation_out
from taquilla.services.reservation_service import (
    CartItem,
    cancel_reservation,
    create_reservation,
    get_reservation,
    list_user_reservations,
)

router = APIRouter(tags=["reservations"])


@router.post("/reservations", response_model=ReservationOut, status_code=201)
def create(body: ReservationCreate, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    items = [CartItem(ticket_type_id=i.ticketTypeId, quantity=i.quantity) for i in body.items]
    r = retry_on_contention(lambda: create_reservation(db, user.id, body.eventId, items))
    return reservation_out(r)


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
def read(reservation_id: str, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reservation_out(get_reservation(db, reservation_id, user_id=user.id))


@router.get("/me/reservations", response_model=List[ReservationOut])
def list_mine(status: Optional[str] = "active", db: Session = Depends(get_db),
              user: CurrentUser = Depends(get_current_user)):
    # status=all lists every reservation of the caller
    wanted = None if status in (None, "", "all") else status
    return [reservation_out(r) for r in list_user_reservations(db, user.id, status=wanted)]


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
def cancel_mine(reservation_id: str, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    r = retry_on_contention(lambda: cancel_reservation(db, reservation_id, user_id=user.id))
    return reservation_out(r)


@router.post("/admin/reservations/{reservation_id}/cancel", response_model=ReservationOut)
def cancel_any(reservation_id: str, db: Session = Depends(get_db),
               user: CurrentUser = Depends(require_roles("admin", "ops"))):
    r = retry_on_contention(lambda: cancel_reservation(db, reservation_id, actor=user.id))
    return reservation_out(r)
