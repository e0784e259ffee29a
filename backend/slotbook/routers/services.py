# backend/slotbook/routers/services.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.services import ServiceRead, ServiceUpdate
from ..services.businesses import destroy_service, get_service, update_service
from .deps import get_actor_id

router = APIRouter(prefix="/services", tags=["services"])


@router.get("/{id}", response_model=ServiceRead)
def show_service(id: int, db: Session = Depends(get_db)):
    return get_service(db, id)


@router.patch("/{id}", response_model=ServiceRead)
def patch_service(
    id: int,
    data: ServiceUpdate,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return update_service(db, id, actor_id, **data.model_dump(exclude_unset=True))


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_service(
    id: int,
    actor_id: int = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    destroy_service(db, id, actor_id)
