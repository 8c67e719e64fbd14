from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from iamaas.models import DeploymentORM, UserCreate, UserORM, UserRead
from iamaas.services.errors import IntegrityException, NotFoundException

logger = logging.getLogger(__name__)


def create_user(session: Session, payload: UserCreate) -> UserRead:
    user = UserORM.model_validate(payload)
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise IntegrityException(f"Email already in use: {payload.email}") from exc
    session.refresh(user)
    logger.info("Created user id=%s email=%s balance=%s", user.id, user.email, user.balance)
    return UserRead.model_validate(user)


def list_users(session: Session) -> list[UserRead]:
    users = session.exec(select(UserORM).order_by(UserORM.id)).all()
    return [UserRead.model_validate(u) for u in users]


def get_user_orm(session: Session, *, user_id: int) -> UserORM:
    if not (user := session.get(UserORM, user_id)):
        raise NotFoundException("User not found")
    return user


def get_user(session: Session, *, user_id: int) -> UserRead:
    return UserRead.model_validate(get_user_orm(session, user_id=user_id))


def delete_user(session: Session, *, user_id: int) -> UserRead:
    user = get_user_orm(session, user_id=user_id)
    owned = session.exec(select(DeploymentORM.id).where(DeploymentORM.user_id == user_id).limit(1)).first()
    if owned is not None:
        raise IntegrityException("User still owns deployments; delete them first")
    deleted = UserRead.model_validate(user)
    session.delete(user)
    session.commit()
    logger.info("Deleted user id=%s", user_id)
    return deleted
