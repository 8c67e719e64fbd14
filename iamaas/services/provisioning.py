from __future__ import annotations

from dataclasses import dataclass
import logging
import secrets
from typing import Literal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from iamaas.config import Settings, settings as default_settings
from iamaas.identity import (
    IdentityProvider,
    IdentityProviderError,
    RealmConflictError,
    identity_provider as default_identity_provider,
)
from iamaas.mail import MailDeliveryError, Notifier, notifier as default_notifier
from iamaas.models import DeploymentORM, DeploymentRead, DeploymentState, UserORM
from iamaas.services import deployments as deployment_service
from iamaas.services import users as user_service
from iamaas.services.credentials import RandomBytes, issue_admin_credential
from iamaas.services.errors import (
    IamException,
    InsufficientBalanceException,
    InternalException,
    NotificationFailedException,
    ProviderException,
    RealmAlreadyExistsException,
)

logger = logging.getLogger(__name__)

OutcomeKind = Literal["deployed", "failed", "rejected"]


@dataclass(frozen=True)
class ProvisionOutcome:
    kind: OutcomeKind
    realm_created: bool
    error: IamException | None = None
    mail_delivered: bool = True

    def __post_init__(self) -> None:
        if self.kind == "rejected" and self.error is None:
            raise ValueError("A rejected outcome must carry its error")

    @property
    def state(self) -> DeploymentState | None:
        if self.kind == "deployed":
            return DeploymentState.DEPLOYED
        if self.kind == "failed":
            return DeploymentState.FAILED_TO_DEPLOY
        return None

    @property
    def needs_compensation(self) -> bool:
        # A rejected attempt never created anything, so it never deletes.
        return self.kind == "failed" and self.realm_created


@dataclass
class _Progress:
    realm_created: bool = False


class DeploymentProvisioner:
    """Run one provisioning attempt for a customer realm.

    Preconditions (customer balance, realm availability) are checked before any
    external call. Every failure afterwards is classified into a
    ``ProvisionOutcome``; failed attempts delete the realm they created, and the
    deployment record is then written once in its final state. Rejected attempts
    write nothing.
    """

    def __init__(
        self,
        *,
        session: Session,
        identity_provider: IdentityProvider | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        random_bytes: RandomBytes = secrets.token_bytes,
    ) -> None:
        self._session = session
        self._identity_provider = identity_provider or default_identity_provider
        self._notifier = notifier or default_notifier
        self._settings = settings or default_settings
        self._random_bytes = random_bytes

    def provision(self, *, user_id: int, realm_name: str, plan: str) -> DeploymentRead:
        user = user_service.get_user_orm(self._session, user_id=user_id)
        self._check_preconditions(user, realm_name)

        deployment = DeploymentORM(
            user_id=user.id,
            realm_name=realm_name,
            plan=plan,
            state=DeploymentState.PENDING,
        )
        logger.info("Provisioning realm=%s user_id=%s plan=%s", realm_name, user_id, plan)

        progress = _Progress()
        try:
            outcome = self._attempt(deployment, email=user.email, progress=progress)
        except BaseException:
            logger.error("Provisioning of realm=%s interrupted; recording failure", realm_name)
            deployment.state = DeploymentState.FAILED_TO_DEPLOY
            if progress.realm_created:
                self._compensate(realm_name)
            try:
                self._persist(deployment, realm_created=progress.realm_created, compensated=True)
            except IamException as exc:
                logger.error("Could not record interrupted attempt for realm=%s: %s", realm_name, exc)
            raise

        if outcome.needs_compensation:
            self._compensate(realm_name)
        if outcome.kind == "rejected":
            raise outcome.error

        deployment.state = outcome.state
        saved = self._persist(
            deployment,
            realm_created=outcome.realm_created,
            compensated=outcome.needs_compensation,
            attempt_error=outcome.error,
        )
        logger.info(
            "Provisioning finished realm=%s deployment_id=%s state=%s mail_delivered=%s",
            realm_name,
            saved.id,
            saved.state.value,
            outcome.mail_delivered,
        )
        if outcome.error is not None:
            outcome.error.deployment = saved
            raise outcome.error
        return saved

    def _check_preconditions(self, user: UserORM, realm_name: str) -> None:
        if user.balance <= 0:
            logger.warning("Rejecting realm=%s for user_id=%s: balance=%s", realm_name, user.id, user.balance)
            raise InsufficientBalanceException("Balance is not enough to create a deployment")
        if not deployment_service.is_realm_available(self._session, realm_name):
            logger.warning("Rejecting realm=%s for user_id=%s: name is taken", realm_name, user.id)
            raise RealmAlreadyExistsException(f"Realm {realm_name} already exists")

    def _attempt(self, deployment: DeploymentORM, *, email: str, progress: _Progress) -> ProvisionOutcome:
        realm = deployment.realm_name
        try:
            credential = issue_admin_credential(
                base_url=self._settings.keycloak_base_url,
                realm_name=realm,
                random_bytes=self._random_bytes,
            )
            self._identity_provider.create_realm(realm)
            progress.realm_created = True
            self._identity_provider.create_admin_user(realm, credential.username, credential.password, True)
            self._notifier.send_credentials(email, credential.username, credential.password, credential.console_url)
        except Exception as exc:
            return self._classify_failure(exc, realm=realm, realm_created=progress.realm_created)
        return ProvisionOutcome(kind="deployed", realm_created=True)

    def _classify_failure(self, exc: Exception, *, realm: str, realm_created: bool) -> ProvisionOutcome:
        if isinstance(exc, RealmConflictError) and not realm_created:
            logger.warning("Identity provider already holds realm=%s: %s", realm, exc)
            error: IamException = RealmAlreadyExistsException(f"Realm {realm} already exists")
            error.__cause__ = exc
            return ProvisionOutcome(kind="rejected", realm_created=False, error=error)

        if isinstance(exc, IdentityProviderError):
            logger.error("Identity provider failed for realm=%s realm_created=%s: %s", realm, realm_created, exc)
            error = ProviderException(f"Identity provider failed to provision realm {realm}")
            error.__cause__ = exc
            return ProvisionOutcome(kind="failed", realm_created=realm_created, error=error)

        if isinstance(exc, MailDeliveryError):
            if not self._settings.fail_on_mail_error:
                logger.error("Sending credentials for realm=%s failed; keeping deployment: %s", realm, exc)
                return ProvisionOutcome(kind="deployed", realm_created=realm_created, mail_delivered=False)
            logger.warning("Sending credentials for realm=%s failed and fail-on-mail-error is on: %s", realm, exc)
            error = NotificationFailedException(f"Failed to send credentials for realm {realm}")
            error.__cause__ = exc
            return ProvisionOutcome(kind="failed", realm_created=realm_created, error=error, mail_delivered=False)

        logger.error("Unexpected error while provisioning realm=%s", realm, exc_info=exc)
        error = InternalException("Internal error while provisioning deployment")
        error.__cause__ = exc
        return ProvisionOutcome(kind="failed", realm_created=realm_created, error=error)

    def _compensate(self, realm: str) -> None:
        logger.warning("Compensating failed provisioning: deleting realm=%s", realm)
        try:
            self._identity_provider.delete_realm(realm)
        except Exception as exc:
            logger.error("Failed to delete realm=%s during compensation; it may be orphaned", realm, exc_info=exc)

    def _persist(
        self,
        deployment: DeploymentORM,
        *,
        realm_created: bool,
        compensated: bool,
        attempt_error: IamException | None = None,
    ) -> DeploymentRead:
        """Write the final record. A store failure undoes a realm that is still live."""
        realm = deployment.realm_name
        try:
            return deployment_service.save_deployment(self._session, deployment)
        except IntegrityError as exc:
            logger.error("Store rejected deployment for realm=%s: name already recorded", realm)
            if attempt_error is not None:
                logger.error("Earlier failure for realm=%s superseded by store conflict: %s", realm, attempt_error)
            if realm_created and not compensated:
                self._compensate(realm)
            raise RealmAlreadyExistsException(f"Realm {realm} already exists") from exc
        except SQLAlchemyError as exc:
            logger.error("Failed to record deployment for realm=%s", realm, exc_info=exc)
            if attempt_error is not None:
                logger.error("Earlier failure for realm=%s superseded by store failure: %s", realm, attempt_error)
            if realm_created and not compensated:
                self._compensate(realm)
            raise InternalException("Internal error while provisioning deployment") from exc
