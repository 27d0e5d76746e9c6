from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from webfram.api.users import Address, UserCreate
from webfram.app import create_app
from webfram.bind import BindModel, Field, register_model, type_name

USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_form_post_reports_all_field_errors(client):
    response = client.post(
        "/users",
        content="name=A&email=bad&age=-5",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "E2000_VALIDATION_GENERIC"
    assert error["metadata"]["error_count"] == 3
    assert error["metadata"]["errors"] == [
        {"field": "Name", "error": "must have at least 2 characters"},
        {"field": "Email", "error": "is not a valid email address"},
        {"field": "Age", "error": "must be ≥ 0"},
    ]


def test_json_post_creates_user(client):
    response = client.post("/users", json={"Name": "Ada", "Email": "ada@example.com", "Age": 36, "Tags": ["math"]})
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["Name"] == "Ada"
    assert user["Role"] == "user"
    assert user["Tags"] == ["math"]


def test_xml_post_creates_user(client):
    body = '<user age="30"><name>Grace</name><email>grace@example.com</email><tag>navy</tag></user>'
    response = client.post("/users", content=body, headers={"Content-Type": "application/xml"})
    assert response.status_code == 201
    assert response.json()["user"]["Age"] == 30
    assert response.json()["user"]["Tags"] == ["navy"]


def test_nested_form_keys(client):
    response = client.post(
        "/users",
        data={"name": "Ada", "email": "ada@example.com", "age": "36", "address.street": "", "address.city": "Paris"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["metadata"]["errors"] == [{"field": "Home.street", "error": "is required"}]


def test_decode_failures_use_the_error_envelope(client):
    bad_json = client.post("/users", content="{nope", headers={"Content-Type": "application/json"})
    assert bad_json.status_code == 400
    assert bad_json.json()["error"]["code"] == "E2021_INVALID_JSON"

    unknown = client.post("/users", json={"Name": "Ada", "is_admin": True})
    assert unknown.status_code == 400
    assert unknown.json()["error"]["code"] == "E2024_UNKNOWN_FIELD"

    plain = client.post("/users", content="hello", headers={"Content-Type": "text/plain"})
    assert plain.status_code == 415
    assert plain.json()["error"]["code"] == "E2025_UNSUPPORTED_MEDIA_TYPE"


def test_query_binding(client):
    ok = client.get("/users", params={"page": "2", "per-page": "10", "role": "admin"})
    assert ok.status_code == 200
    assert ok.json()["filters"]["per_page"] == 10

    bad = client.get("/users", params={"per-page": "500", "role": "root"})
    assert bad.status_code == 400
    assert bad.json()["error"]["metadata"]["errors"] == [
        {"field": "per_page", "error": "must be ≤ 100"},
        {"field": "role", "error": "must be one of: admin, user, guest"},
    ]


def test_path_and_header_binding(client):
    response = client.get(f"/users/{USER_ID}", headers={"X-Request-ID": "req-1"})
    assert response.status_code == 200
    assert response.json() == {"id": USER_ID, "request_id": "req-1"}

    bad = client.get("/users/not-a-uuid")
    assert bad.status_code == 400
    assert {"field": "user_id", "error": "invalid UUID"} in bad.json()["error"]["metadata"]["errors"]


def test_correlation_id_is_echoed(client):
    response = client.get("/health", headers={"X-Correlation-ID": "corr-42"})
    assert response.headers["X-Correlation-ID"] == "corr-42"


def test_openapi_includes_bind_components(client):
    schemas = client.get("/openapi.json").json()["components"]["schemas"]

    user = schemas[type_name(UserCreate)]
    assert user["properties"]["Name"]["minLength"] == 2
    assert user["properties"]["Home"] == {"$ref": "#/components/schemas/" + type_name(Address)}
    assert user["required"] == ["Name", "Email"]

    xml_user = schemas[type_name(UserCreate) + ".XML"]
    assert xml_user["properties"]["age"]["xml"] == {"name": "age", "nodeType": "attribute"}
    assert "<UserCreate" in xml_user["example"]


def test_components_registry_is_frozen_after_startup(client, app):
    assert app.state.components.frozen


def test_eager_rule_check_logs_at_startup(settings):
    class Misconfigured(BindModel):
        count: int = Field(validate="minlength=1")

    register_model(Misconfigured)
    eager = settings.model_copy(update={"BIND_EAGER_RULE_CHECK": True})

    with capture_logs() as logs:
        with TestClient(create_app(eager, configure_logs=False)):
            pass

    misapplied = [e for e in logs if e["event"] == "validation_rule_misapplied"]
    assert [e["model"] for e in misapplied] == ["Misconfigured"]
