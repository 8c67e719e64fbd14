from __future__ import annotations

import logging
from uuid import UUID

from sqlmodel import Session, select

from iamaas.identity import IdentityProvider, IdentityProviderError, identity_provider as default_identity_provider
from iamaas.models import DeploymentORM, DeploymentRead
from iamaas.services import users as user_service
from iamaas.services.errors import NotFoundException, ProviderException

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _get_deployment_orm(session: Session, *, user_id: int, deployment_id: UUID) -> DeploymentORM:
    stmt = select(DeploymentORM).where(
        DeploymentORM.id == deployment_id,
        DeploymentORM.user_id == user_id,
    )
    if not (deployment := session.exec(stmt).one_or_none()):
        raise NotFoundException("Deployment not found")
    return deployment


def is_realm_available(session: Session, realm_name: str) -> bool:
    existing = session.exec(
        select(DeploymentORM.id).where(DeploymentORM.realm_name == realm_name).limit(1)
    ).first()
    return existing is None


def save_deployment(session: Session, deployment: DeploymentORM) -> DeploymentRead:
    """Write a deployment in a single commit. IntegrityError propagates after rollback."""
    session.add(deployment)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(deployment)
    return DeploymentRead.model_validate(deployment)


def list_deployments(
    session: Session,
    *,
    user_id: int,
    page: int = 0,
    size: int = DEFAULT_PAGE_SIZE,
) -> list[DeploymentRead]:
    if page < 0:
        raise ValueError("page must be >= 0")
    if not 1 <= size <= MAX_PAGE_SIZE:
        raise ValueError(f"size must be between 1 and {MAX_PAGE_SIZE}")
    user_service.get_user_orm(session, user_id=user_id)
    deployments = session.exec(
        select(DeploymentORM)
        .where(DeploymentORM.user_id == user_id)
        .order_by(DeploymentORM.created_at, DeploymentORM.realm_name)
        .offset(page * size)
        .limit(size)
    ).all()
    return [DeploymentRead.model_validate(d) for d in deployments]


def get_deployment(session: Session, *, user_id: int, deployment_id: UUID) -> DeploymentRead:
    deployment = _get_deployment_orm(session, user_id=user_id, deployment_id=deployment_id)
    return DeploymentRead.model_validate(deployment)


def update_deployment_plan(session: Session, *, user_id: int, deployment_id: UUID, plan: str) -> DeploymentRead:
    deployment = _get_deployment_orm(session, user_id=user_id, deployment_id=deployment_id)
    previous = deployment.plan
    deployment.plan = plan
    updated = save_deployment(session, deployment)
    logger.info("Changed plan of deployment id=%s from %s to %s", deployment_id, previous, plan)
    return updated


def delete_deployment(
    session: Session,
    *,
    user_id: int,
    deployment_id: UUID,
    identity_provider: IdentityProvider | None = None,
) -> DeploymentRead:
    """Delete the deployment's realm from the identity provider, then the record.

    The record stays in place when the realm deletion fails, so the call can be
    repeated. A realm that is already gone does not block removing the record.
    """
    provider = identity_provider or default_identity_provider
    deployment = _get_deployment_orm(session, user_id=user_id, deployment_id=deployment_id)
    try:
        provider.delete_realm(deployment.realm_name)
    except IdentityProviderError as exc:
        logger.error("Failed to delete realm %s of deployment id=%s: %s", deployment.realm_name, deployment_id, exc)
        raise ProviderException(f"Failed to delete realm {deployment.realm_name}") from exc
    deleted = DeploymentRead.model_validate(deployment)
    session.delete(deployment)
    session.commit()
    logger.info(
        "Deleted deployment id=%s realm=%s user_id=%s",
        deployment_id,
        deleted.realm_name,
        user_id,
    )
    return deleted
