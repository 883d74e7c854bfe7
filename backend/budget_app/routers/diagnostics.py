import asyncio

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import crud
from ..config import get_settings
from ..db import get_db
from ..pipeline import build_recognizer
from ..pipeline.recognition import TransactionRecognizer
from ..schemas import ExtractedTransactionOut, ExtractionResponse, PhoneDirectoryOut, PhoneRegistrationOut


def require_debug_enabled() -> None:
    if not get_settings().debug_endpoints_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found.")


router = APIRouter(prefix="/debug", tags=["debug"], dependencies=[Depends(require_debug_enabled)])


def get_recognizer() -> TransactionRecognizer:
    return build_recognizer()


@router.get("/phones", response_model=PhoneDirectoryOut)
def list_registered_phones(db: Session = Depends(get_db)) -> PhoneDirectoryOut:
    profiles = [
        PhoneRegistrationOut(
            user_id=user.id,
            username=user.username,
            phone_number=user.phone_number,
            whatsapp_enabled=user.whatsapp_enabled,
        )
        for user in crud.list_users(db)
    ]
    return PhoneDirectoryOut(
        profiles=profiles,
        with_phone=[profile for profile in profiles if profile.phone_number],
        without_phone=[profile for profile in profiles if not profile.phone_number],
    )


@router.post("/ocr", response_model=ExtractionResponse)
async def test_extraction(
    image: UploadFile = File(...),
    recognizer: TransactionRecognizer = Depends(get_recognizer),
) -> JSONResponse:
    content = await image.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No image provided.")

    outcome = await asyncio.to_thread(recognizer.extract, content, image.content_type or "image/jpeg")
    candidate = outcome.value
    usable = candidate is not None and candidate.is_usable
    response = ExtractionResponse(
        status=outcome.status.value,
        data=ExtractedTransactionOut(**candidate.to_dict()) if candidate is not None else None,
        message=(
            "Transaction data extracted successfully!"
            if usable
            else "Could not extract transaction data from image"
        ),
    )
    return JSONResponse(
        response.model_dump(mode="json"),
        status_code=status.HTTP_200_OK if usable else status.HTTP_400_BAD_REQUEST,
    )
