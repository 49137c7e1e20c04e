import pytest
from drf_spectacular.generators import SchemaGenerator
from rest_framework import status
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db


def obtain_tokens(client, username: str, password: str) -> tuple[str, str]:
    r = client.post(
        "/api/v1/auth/jwt/create/",
        {"username": username, "password": password},
        format="json",
    )
    assert r.status_code == status.HTTP_200_OK, r.content
    return r.data["access"], r.data["refresh"]


def test_jwt_create_verify_and_use(seeker):
    client = APIClient()
    access, _ = obtain_tokens(client, seeker.username, "Chat-pass-123")

    r = client.post("/api/v1/auth/jwt/verify/", {"token": access}, format="json")
    assert r.status_code == status.HTTP_200_OK

    bad = access[:-2] + "ab"
    r = client.post("/api/v1/auth/jwt/verify/", {"token": bad}, format="json")
    assert r.status_code == status.HTTP_401_UNAUTHORIZED

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    r = client.get("/api/v1/conversations/")
    assert r.status_code == status.HTTP_200_OK


def test_schema_tag_grouping():
    generator = SchemaGenerator()
    schema = generator.get_schema(request=None, public=True)
    paths = schema["paths"]
    tags_map = {}
    for candidate in [
        "/api/v1/conversations/",
        "/api/v1/messages/",
        "/api/v1/auth/jwt/create/",
    ]:
        first_op = next(iter(paths[candidate].values()))
        tags_map[candidate] = first_op.get("tags")
    assert tags_map["/api/v1/conversations/"] == ["Conversations"]
    assert tags_map["/api/v1/messages/"] == ["Messages"]
    assert tags_map["/api/v1/auth/jwt/create/"] == ["JWT Authentication"]
