from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..models import UserModel
from ..schemas import ProfileOut, WhatsAppSettingsUpdate
from ..security import get_current_user

router = APIRouter(prefix="/me", tags=["profile"])


@router.get("", response_model=ProfileOut)
def read_profile(current_user: UserModel = Depends(get_current_user)) -> ProfileOut:
    return ProfileOut.model_validate(current_user)


@router.put("/whatsapp", response_model=ProfileOut)
def update_whatsapp(
    data: WhatsAppSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
) -> ProfileOut:
    """Register the number screenshots will be sent from."""
    user = crud.update_whatsapp_settings(db, current_user, data)
    return ProfileOut.model_validate(user)
