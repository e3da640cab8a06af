import logging
from datetime import timedelta
from typing import List
from sqlalchemy.orm import Session

from app.models.envelope import Envelope, StatusEnvelope
from app.services.clock import SystemClock, as_utc


def recover_stalled_seals(db: Session, clock: SystemClock, max_age_seconds: int) -> List[str]:
    """
    Libera envelopes que ficaram em pending_seal porque o processo caiu
    no meio da selagem. Eles voltam para sent e o signatário pode reenviar.
    """
    cutoff = clock.now() - timedelta(seconds=max_age_seconds)
    recovered = []

    # 1. Buscar envelopes selando há mais tempo que o limite
    pending = db.query(Envelope).filter(Envelope.status == StatusEnvelope.PENDING_SEAL).all()
    for envelope in pending:
        started = envelope.seal_started_at
        if started is not None and as_utc(started) > cutoff:
            continue

        # 2. Volta para sent só se ainda estiver em pending_seal
        updated = db.query(Envelope).filter(
            Envelope.id == envelope.id,
            Envelope.status == StatusEnvelope.PENDING_SEAL
        ).update({
            Envelope.status: StatusEnvelope.SENT,
            Envelope.seal_started_at: None,
            Envelope.seal_attempt: None,
        }, synchronize_session=False)
        if updated == 1:
            logging.info(f"Releasing stalled seal for envelope {envelope.request_id} (started {started})")
            recovered.append(envelope.request_id)

    db.commit()
    return recovered
