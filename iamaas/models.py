from datetime import datetime
import re
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import field_validator
from sqlmodel import Field, SQLModel

REALM_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]{1,62}$"


class DeploymentState(str, Enum):
    PENDING = "PENDING"
    DEPLOYED = "DEPLOYED"
    FAILED_TO_DEPLOY = "FAILED_TO_DEPLOY"


class UserBase(SQLModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserORM(UserBase, table=True):
    __tablename__ = "user"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(nullable=False, unique=True, index=True)
    balance: int = Field(default=0, nullable=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class UserCreate(UserBase):
    balance: int = 0

    @field_validator("email")
    @classmethod
    def _email_has_at(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value.strip()


class UserRead(UserBase):
    id: int
    balance: int
    created_at: datetime


class DeploymentBase(SQLModel):
    realm_name: str
    plan: str


class DeploymentORM(SQLModel, table=True):
    __tablename__ = "deployment"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    # Plain foreign key; deployments of a user are fetched with explicit queries.
    user_id: int = Field(foreign_key="user.id", index=True, nullable=False)
    realm_name: str = Field(nullable=False, unique=True, index=True)
    plan: str = Field(nullable=False)
    state: DeploymentState = Field(default=DeploymentState.PENDING, nullable=False, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow},
    )


class DeploymentCreate(DeploymentBase):
    plan: str = Field(min_length=1)

    @field_validator("realm_name")
    @classmethod
    def _valid_realm_name(cls, value: str) -> str:
        if not re.fullmatch(REALM_NAME_PATTERN, value):
            raise ValueError(
                "realm_name must be 2-63 letters, digits, '-' or '_', starting with a letter or digit"
            )
        return value


class DeploymentUpdate(SQLModel):
    plan: str = Field(min_length=1)


class DeploymentRead(DeploymentBase):
    id: UUID
    user_id: int
    state: DeploymentState
    created_at: datetime
    updated_at: datetime


class RealmAvailability(SQLModel):
    realm_name: str
    available: bool
