from __future__ import annotations

from dataclasses import replace
from urllib.parse import parse_qs, urlparse

from healthdesk.config import Settings
from healthdesk.sso import IdentityProvider

from conftest import IDP_URL


def test_gmail_connector_authorization_url(client):
    response = client.post("/api/connector/authorize", json={"action": "get_authorization_url"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"link": body["authorizationUrl"]}
    query = parse_qs(urlparse(body["authorizationUrl"]).query)
    assert query["connection_id"] == ["gmail"]
    assert query["state"] == ["gmail-connection"]
    assert query["redirect_uri"] == [f"{IDP_URL}/sso/v1/oauth/gmail/callback"]


def test_configured_connection_ids_and_redirect(client, app, settings):
    custom = replace(
        settings,
        connector_ids={"gmail": "conn_gmail_1", "slack": "conn_slack_2"},
        connector_redirect_uri="https://app.example/connectors/done",
    )
    app.state.settings = custom
    app.state.identity_provider = IdentityProvider(custom)

    response = client.post(
        "/api/connector/authorize", json={"action": "get_authorization_url", "connector": "Slack"}
    )

    query = parse_qs(urlparse(response.json()["authorizationUrl"]).query)
    assert query["connection_id"] == ["conn_slack_2"]
    assert query["redirect_uri"] == ["https://app.example/connectors/done"]
    assert query["state"] == ["slack-connection"]


def test_unsupported_action(client):
    response = client.post("/api/connector/authorize", json={"action": "send_email"})
    assert response.status_code == 400
    assert "get_authorization_url" in response.json()["error"]


def test_unknown_connector(client):
    response = client.post(
        "/api/connector/authorize", json={"action": "get_authorization_url", "connector": "fax"}
    )
    assert response.status_code == 400


def test_connector_without_credentials(client, app):
    app.state.identity_provider = IdentityProvider(Settings())
    response = client.post("/api/connector/authorize", json={"action": "get_authorization_url"})
    assert response.status_code == 500
    assert response.json()["error"] == "SSO provider not configured"
