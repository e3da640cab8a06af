from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.config.settings import STALLED_SEAL_SECONDS
from app.database import get_db
from app.schemas.envelope import RecoveredSealsOut
from app.services.clock import SystemClock, get_clock
from app.services.maintenance_service import recover_stalled_seals

router = APIRouter(prefix="/admin", tags=["Admin"])

@router.post("/recover-stalled-seals", response_model=RecoveredSealsOut, status_code=200)
def recover_stalled_seals_endpoint(
    max_age_seconds: int = STALLED_SEAL_SECONDS,
    db: Session = Depends(get_db),
    clock: SystemClock = Depends(get_clock),
):
    """
    Libera envelopes presos em pending_seal (selagem interrompida) para que
    o signatário possa enviar de novo. Retorna os requestIds liberados.
    """
    try:
        recovered = recover_stalled_seals(db, clock, max_age_seconds)
        return RecoveredSealsOut(recovered=recovered)
    except Exception as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
