from __future__ import annotations

import logging
from uuid import UUID

import typer
import yaml
from fastapi.encoders import jsonable_encoder

from iamaas.config import settings
from iamaas.db import engine, init_db, session_scope
from iamaas.identity import identity_provider
from iamaas.logging_config import configure_logging
from iamaas.mail import notifier
from iamaas.models import DeploymentCreate, DeploymentUpdate, UserCreate
from iamaas.services import deployments as deployment_service, users as user_service
from iamaas.services.errors import IamException
from iamaas.services.provisioning import DeploymentProvisioner

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="IAM-as-a-Service CLI", pretty_exceptions_show_locals=False)


def _exit_for_domain_error(exc: IamException) -> None:
    logger.warning("CLI command failed with domain error: %s", exc)
    if exc.deployment is not None:
        _echo_yaml_entity(exc.deployment)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _exit_for_invalid_input(exc: ValueError) -> None:
    logger.warning("Invalid CLI input: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_yaml_entity(entity: object) -> None:
    encoded = jsonable_encoder(entity)
    typer.echo(yaml.safe_dump(encoded, sort_keys=False), nl=False)


@app.command("init-db")
def init_database() -> None:
    init_db(engine)
    typer.echo("Database initialised")


@app.command("create-user")
def create_user(
    email: str,
    first_name: str | None = typer.Option(None, "--first-name"),
    last_name: str | None = typer.Option(None, "--last-name"),
    balance: int = typer.Option(0, "--balance", help="Initial account balance."),
) -> None:
    try:
        payload = UserCreate(email=email, first_name=first_name, last_name=last_name, balance=balance)
    except ValueError as e:
        _exit_for_invalid_input(e)
    with session_scope() as session:
        try:
            user = user_service.create_user(session, payload)
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(user)


@app.command("delete-user")
def delete_user(user_id: int) -> None:
    with session_scope() as session:
        try:
            user = user_service.delete_user(session, user_id=user_id)
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(user)


@app.command("list-users")
def list_users() -> None:
    with session_scope() as session:
        _echo_yaml_entity(user_service.list_users(session))


@app.command("get-user")
def get_user(user_id: int) -> None:
    with session_scope() as session:
        try:
            user = user_service.get_user(session, user_id=user_id)
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(user)


@app.command("create-deployment")
def create_deployment(
    *,
    user_id: int = typer.Option(..., "--user-id"),
    realm_name: str = typer.Option(..., "--realm-name", help="Globally unique name of the realm to provision."),
    plan: str = typer.Option(..., "--plan", help="Tariff plan of the deployment."),
) -> None:
    try:
        payload = DeploymentCreate(realm_name=realm_name, plan=plan)
    except ValueError as e:
        _exit_for_invalid_input(e)

    with session_scope() as session:
        provisioner = DeploymentProvisioner(
            session=session,
            identity_provider=identity_provider,
            notifier=notifier,
            settings=settings,
        )
        try:
            deployment = provisioner.provision(user_id=user_id, realm_name=payload.realm_name, plan=payload.plan)
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployment)


@app.command("list-deployments")
def list_deployments(
    user_id: int,
    page: int = typer.Option(0, "--page", min=0),
    size: int = typer.Option(deployment_service.DEFAULT_PAGE_SIZE, "--size", min=1, max=deployment_service.MAX_PAGE_SIZE),
) -> None:
    with session_scope() as session:
        try:
            deployments = deployment_service.list_deployments(session, user_id=user_id, page=page, size=size)
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployments)


@app.command("get-deployment")
def get_deployment(user_id: int, deployment_id: UUID) -> None:
    with session_scope() as session:
        try:
            deployment = deployment_service.get_deployment(
                session,
                user_id=user_id,
                deployment_id=deployment_id,
            )
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployment)


@app.command("update-deployment")
def update_deployment(
    *,
    user_id: int = typer.Option(..., "--user-id"),
    deployment_id: UUID = typer.Option(..., "--deployment-id"),
    plan: str = typer.Option(..., "--plan"),
) -> None:
    try:
        update = DeploymentUpdate(plan=plan)
    except ValueError as e:
        _exit_for_invalid_input(e)
    with session_scope() as session:
        try:
            deployment = deployment_service.update_deployment_plan(
                session, user_id=user_id, deployment_id=deployment_id, plan=update.plan
            )
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployment)


@app.command("delete-deployment")
def delete_deployment(user_id: int, deployment_id: UUID) -> None:
    with session_scope() as session:
        try:
            deployment = deployment_service.delete_deployment(
                session,
                user_id=user_id,
                deployment_id=deployment_id,
                identity_provider=identity_provider,
            )
        except IamException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployment)


@app.command("realm-available")
def realm_available(realm_name: str) -> None:
    with session_scope() as session:
        available = deployment_service.is_realm_available(session, realm_name)
    _echo_yaml_entity({"realm_name": realm_name, "available": available})
    if not available:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
