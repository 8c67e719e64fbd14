import yaml

from iamaas.config import Settings
from iamaas.identity import IdentityProviderError
from iamaas.mail import MailDeliveryError
from tests.fakes import KEYCLOAK_TEST_URL


def _create_user(runner, cli, email="cli@example.com", balance="10") -> int:
    result = runner.invoke(cli.app, ["create-user", email, "--balance", balance])
    assert result.exit_code == 0, result.output
    return yaml.safe_load(result.output)["id"]


def _create_deployment(runner, cli, user_id: int, realm_name="acme", plan="basic"):
    return runner.invoke(
        cli.app,
        ["create-deployment", "--user-id", str(user_id), "--realm-name", realm_name, "--plan", plan],
    )


def test_cli_user_commands(cli_runner):
    runner, cli = cli_runner

    user_id = _create_user(runner, cli)

    result = runner.invoke(cli.app, ["get-user", str(user_id)])
    assert result.exit_code == 0
    assert "email: cli@example.com" in result.output

    result = runner.invoke(cli.app, ["list-users"])
    assert result.exit_code == 0
    assert "cli@example.com" in result.output

    result = runner.invoke(cli.app, ["create-user", "cli@example.com"])
    assert result.exit_code == 1
    assert "Email already in use" in result.output

    result = runner.invoke(cli.app, ["delete-user", str(user_id)])
    assert result.exit_code == 0
    result = runner.invoke(cli.app, ["get-user", str(user_id)])
    assert result.exit_code == 1
    assert "User not found" in result.output


def test_cli_deployment_lifecycle(cli_runner):
    runner, cli = cli_runner
    user_id = _create_user(runner, cli)

    result = _create_deployment(runner, cli, user_id)
    assert result.exit_code == 0, result.output
    created = yaml.safe_load(result.output)
    assert created["state"] == "DEPLOYED"
    assert cli.notifier.sent[0]["console_url"] == f"{KEYCLOAK_TEST_URL}/admin/acme/console"
    deployment_id = created["id"]

    result = runner.invoke(cli.app, ["list-deployments", str(user_id)])
    assert result.exit_code == 0
    assert [d["id"] for d in yaml.safe_load(result.output)] == [deployment_id]

    result = runner.invoke(cli.app, ["get-deployment", str(user_id), deployment_id])
    assert result.exit_code == 0
    assert "realm_name: acme" in result.output

    result = runner.invoke(
        cli.app, ["update-deployment", "--user-id", str(user_id), "--deployment-id", deployment_id, "--plan", "premium"]
    )
    assert result.exit_code == 0
    assert "plan: premium" in result.output

    result = runner.invoke(cli.app, ["delete-deployment", str(user_id), deployment_id])
    assert result.exit_code == 0
    assert cli.identity_provider.calls_to("delete_realm") == [{"name": "acme"}]

    result = runner.invoke(cli.app, ["get-deployment", str(user_id), deployment_id])
    assert result.exit_code == 1


def test_cli_rejects_deployment_without_balance(cli_runner):
    runner, cli = cli_runner
    user_id = _create_user(runner, cli, balance="0")

    result = _create_deployment(runner, cli, user_id)

    assert result.exit_code == 1
    assert "Balance is not enough" in result.output
    assert cli.identity_provider.calls == []


def test_cli_rejects_invalid_realm_name(cli_runner):
    runner, cli = cli_runner
    user_id = _create_user(runner, cli)

    result = _create_deployment(runner, cli, user_id, realm_name="no spaces allowed")

    assert result.exit_code == 1
    assert cli.identity_provider.calls == []


def test_cli_prints_failed_deployment_on_provider_error(cli_runner):
    runner, cli = cli_runner
    cli.identity_provider.raise_on_create_admin = IdentityProviderError("Failed to create user admin", status_code=500)
    user_id = _create_user(runner, cli)

    result = _create_deployment(runner, cli, user_id)

    assert result.exit_code == 1
    assert "state: FAILED_TO_DEPLOY" in result.output
    assert cli.identity_provider.calls_to("delete_realm") == [{"name": "acme"}]


def test_cli_mail_failure_respects_settings(cli_runner, monkeypatch):
    runner, cli = cli_runner
    cli.notifier.raise_on_send = MailDeliveryError("SMTP host is not configured")
    user_id = _create_user(runner, cli)

    soft = _create_deployment(runner, cli, user_id, realm_name="soft-realm")
    assert soft.exit_code == 0
    assert "state: DEPLOYED" in soft.output

    monkeypatch.setattr(cli, "settings", Settings(keycloak_base_url=KEYCLOAK_TEST_URL, fail_on_mail_error=True))
    hard = _create_deployment(runner, cli, user_id, realm_name="hard-realm")
    assert hard.exit_code == 1
    assert "state: FAILED_TO_DEPLOY" in hard.output
    assert "hard-realm" not in cli.identity_provider.realms


def test_cli_realm_available(cli_runner):
    runner, cli = cli_runner
    user_id = _create_user(runner, cli)

    result = runner.invoke(cli.app, ["realm-available", "acme"])
    assert result.exit_code == 0
    assert "available: true" in result.output

    _create_deployment(runner, cli, user_id)

    result = runner.invoke(cli.app, ["realm-available", "acme"])
    assert result.exit_code == 1
    assert "available: false" in result.output
