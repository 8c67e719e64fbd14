from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from iamaas.api.utils import get_identity_provider, get_notifier
from iamaas.config import Settings, get_settings
from iamaas.db import get_session
from iamaas.identity import IdentityProvider
from iamaas.mail import Notifier
from iamaas.models import DeploymentCreate, DeploymentRead, DeploymentUpdate, UserCreate, UserRead
from iamaas.services import deployments as deployment_service, users as user_service
from iamaas.services.provisioning import DeploymentProvisioner

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, session: Session = Depends(get_session)) -> UserRead:
    return user_service.create_user(session, payload)


@router.get("", response_model=list[UserRead])
def list_users(session: Session = Depends(get_session)) -> list[UserRead]:
    return user_service.list_users(session)


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, session: Session = Depends(get_session)) -> UserRead:
    return user_service.get_user(session, user_id=user_id)


@router.delete("/{user_id}", status_code=204)
def delete_user_endpoint(user_id: int, session: Session = Depends(get_session)) -> None:
    user_service.delete_user(session, user_id=user_id)


@router.post(
    "/{user_id}/deployments",
    response_model=DeploymentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_deployment(
    user_id: int,
    payload: DeploymentCreate,
    session: Session = Depends(get_session),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> DeploymentRead:
    provisioner = DeploymentProvisioner(
        session=session,
        identity_provider=identity_provider,
        notifier=notifier,
        settings=settings,
    )
    return provisioner.provision(user_id=user_id, realm_name=payload.realm_name, plan=payload.plan)


@router.get("/{user_id}/deployments", response_model=list[DeploymentRead])
def list_deployments(
    user_id: int,
    page: int = Query(0, ge=0),
    size: int = Query(deployment_service.DEFAULT_PAGE_SIZE, ge=1, le=deployment_service.MAX_PAGE_SIZE),
    session: Session = Depends(get_session),
) -> list[DeploymentRead]:
    return deployment_service.list_deployments(session, user_id=user_id, page=page, size=size)


@router.get("/{user_id}/deployments/{deployment_id}", response_model=DeploymentRead)
def get_deployment(
    user_id: int, deployment_id: UUID, session: Session = Depends(get_session)
) -> DeploymentRead:
    return deployment_service.get_deployment(session, user_id=user_id, deployment_id=deployment_id)


@router.put("/{user_id}/deployments/{deployment_id}", response_model=DeploymentRead)
def update_deployment(
    user_id: int,
    deployment_id: UUID,
    payload: DeploymentUpdate,
    session: Session = Depends(get_session),
) -> DeploymentRead:
    return deployment_service.update_deployment_plan(
        session, user_id=user_id, deployment_id=deployment_id, plan=payload.plan
    )


@router.delete("/{user_id}/deployments/{deployment_id}", status_code=204)
def delete_deployment_endpoint(
    user_id: int,
    deployment_id: UUID,
    session: Session = Depends(get_session),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
) -> None:
    deployment_service.delete_deployment(
        session, user_id=user_id, deployment_id=deployment_id, identity_provider=identity_provider
    )
