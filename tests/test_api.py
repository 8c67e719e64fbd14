from iamaas.config import Settings, get_settings
from iamaas.identity import IdentityProviderError
from iamaas.mail import MailDeliveryError
from iamaas.main import app
from tests.fakes import KEYCLOAK_TEST_URL


def _create_user(client, email="user@example.com", balance=10) -> int:
    resp = client.post("/users", json={"email": email, "balance": balance})
    assert resp.status_code == 201
    return resp.json()["id"]


def test_user_crud(client):
    user_id = _create_user(client)

    conflict = client.post("/users", json={"email": "user@example.com"})
    assert conflict.status_code == 409

    assert client.get(f"/users/{user_id}").json()["balance"] == 10
    assert [u["id"] for u in client.get("/users").json()] == [user_id]

    assert client.delete(f"/users/{user_id}").status_code == 204
    assert client.get(f"/users/{user_id}").status_code == 404


def test_deployment_lifecycle(client, identity_provider, notifier):
    user_id = _create_user(client)

    created = client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": "basic"})
    assert created.status_code == 201
    body = created.json()
    assert body["state"] == "DEPLOYED"
    assert body["realm_name"] == "acme"
    deployment_id = body["id"]
    assert notifier.sent[0]["email"] == "user@example.com"
    assert notifier.sent[0]["console_url"] == f"{KEYCLOAK_TEST_URL}/admin/acme/console"

    listed = client.get(f"/users/{user_id}/deployments")
    assert listed.status_code == 200
    assert [d["id"] for d in listed.json()] == [deployment_id]

    fetched = client.get(f"/users/{user_id}/deployments/{deployment_id}")
    assert fetched.status_code == 200
    assert fetched.json()["plan"] == "basic"

    updated = client.put(f"/users/{user_id}/deployments/{deployment_id}", json={"plan": "premium"})
    assert updated.status_code == 200
    assert updated.json()["plan"] == "premium"

    # The owner cannot be removed while a deployment exists.
    assert client.delete(f"/users/{user_id}").status_code == 409

    assert client.delete(f"/users/{user_id}/deployments/{deployment_id}").status_code == 204
    assert identity_provider.calls_to("delete_realm") == [{"name": "acme"}]
    assert client.get(f"/users/{user_id}/deployments/{deployment_id}").status_code == 404
    assert client.delete(f"/users/{user_id}/deployments/{deployment_id}").status_code == 404


def test_realm_availability_endpoint(client):
    user_id = _create_user(client)

    before = client.get("/deployments/available", params={"realm_name": "acme"})
    assert before.status_code == 200
    assert before.json() == {"realm_name": "acme", "available": True}

    client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": "basic"})

    after = client.get("/deployments/available", params={"realm_name": "acme"})
    assert after.json()["available"] is False


def test_provision_with_empty_balance_is_payment_required(client, identity_provider):
    user_id = _create_user(client, balance=0)

    resp = client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": "basic"})

    assert resp.status_code == 402
    assert "deployment" not in resp.json()
    assert identity_provider.calls == []
    assert client.get(f"/users/{user_id}/deployments").json() == []


def test_provision_duplicate_realm_is_conflict(client, identity_provider):
    first = _create_user(client, email="first@example.com")
    second = _create_user(client, email="second@example.com")
    assert client.post(f"/users/{first}/deployments", json={"realm_name": "acme", "plan": "basic"}).status_code == 201

    resp = client.post(f"/users/{second}/deployments", json={"realm_name": "acme", "plan": "basic"})

    assert resp.status_code == 409
    assert identity_provider.calls_to("delete_realm") == []
    assert client.get(f"/users/{second}/deployments").json() == []


def test_provider_failure_returns_failed_deployment(client, identity_provider):
    user_id = _create_user(client)
    identity_provider.raise_on_create_admin = IdentityProviderError("Failed to create user admin", status_code=500)

    resp = client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": "basic"})

    assert resp.status_code == 502
    assert resp.json()["deployment"]["state"] == "FAILED_TO_DEPLOY"
    assert resp.json()["deployment"]["realm_name"] == "acme"
    assert "acme" not in identity_provider.realms


def test_hard_mail_failure_returns_bad_gateway(client, identity_provider, notifier):
    app.dependency_overrides[get_settings] = lambda: Settings(
        keycloak_base_url=KEYCLOAK_TEST_URL, fail_on_mail_error=True
    )
    notifier.raise_on_send = MailDeliveryError("SMTP host is not configured")
    user_id = _create_user(client)

    resp = client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": "basic"})

    assert resp.status_code == 502
    assert resp.json()["deployment"]["state"] == "FAILED_TO_DEPLOY"
    assert "acme" not in identity_provider.realms


def test_soft_mail_failure_is_created(client, notifier):
    notifier.raise_on_send = MailDeliveryError("SMTP host is not configured")
    user_id = _create_user(client)

    resp = client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": "basic"})

    assert resp.status_code == 201
    assert resp.json()["state"] == "DEPLOYED"


def test_invalid_payloads_are_unprocessable(client):
    user_id = _create_user(client)

    assert client.post("/users", json={"email": "not-an-email"}).status_code == 422
    bad_realm = client.post(f"/users/{user_id}/deployments", json={"realm_name": "bad name!", "plan": "basic"})
    assert bad_realm.status_code == 422
    empty_plan = client.post(f"/users/{user_id}/deployments", json={"realm_name": "acme", "plan": ""})
    assert empty_plan.status_code == 422
    assert client.get(f"/users/{user_id}/deployments", params={"size": 0}).status_code == 422
    assert client.get(f"/users/{user_id}/deployments/not-a-uuid").status_code == 422


def test_deployments_of_other_users_are_hidden(client):
    owner = _create_user(client, email="owner@example.com")
    stranger = _create_user(client, email="stranger@example.com")
    deployment_id = client.post(
        f"/users/{owner}/deployments", json={"realm_name": "acme", "plan": "basic"}
    ).json()["id"]

    assert client.get(f"/users/{stranger}/deployments/{deployment_id}").status_code == 404
    assert client.put(f"/users/{stranger}/deployments/{deployment_id}", json={"plan": "x"}).status_code == 404
    assert client.delete(f"/users/{stranger}/deployments/{deployment_id}").status_code == 404
