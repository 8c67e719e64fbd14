from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from iamaas.db import get_session
from iamaas.models import RealmAvailability
from iamaas.services import deployments as deployment_service

router = APIRouter(prefix="/deployments", tags=["deployments"])


@router.get("/available", response_model=RealmAvailability)
def realm_available(
    realm_name: str = Query(..., min_length=1),
    session: Session = Depends(get_session),
) -> RealmAvailability:
    return RealmAvailability(
        realm_name=realm_name,
        available=deployment_service.is_realm_available(session, realm_name),
    )
