import pytest
from django.apps import apps

from job_portal.companies.models import Company
from job_portal.realtime.hub import RealtimeHub
from job_portal.users.models import User

TEST_PASSWORD = "Chat-pass-123"  # noqa: S105 test fixture password


@pytest.fixture
def company(db) -> Company:
    return Company.objects.create(name="Acme Hiring")


@pytest.fixture
def other_company(db) -> Company:
    return Company.objects.create(name="Globex")


@pytest.fixture
def seeker(db) -> User:
    return User.objects.create_user(
        username="seeker",
        email="seeker@example.com",
        password=TEST_PASSWORD,
        first_name="Sam",
        last_name="Seeker",
        role=User.Role.SEEKER,
    )


@pytest.fixture
def other_seeker(db) -> User:
    return User.objects.create_user(
        username="seeker2",
        email="seeker2@example.com",
        password=TEST_PASSWORD,
        role=User.Role.SEEKER,
    )


@pytest.fixture
def company_member(db, company) -> User:
    return User.objects.create_user(
        username="recruiter",
        email="recruiter@example.com",
        password=TEST_PASSWORD,
        first_name="Rita",
        last_name="Recruiter",
        role=User.Role.COMPANY,
        company=company,
    )


@pytest.fixture
def user(seeker) -> User:
    return seeker


@pytest.fixture
def hub():
    """A fresh hub installed as the app-wide one for the test."""

    config = apps.get_app_config("realtime")
    previous = config.hub
    config.hub = RealtimeHub(mailbox_size=8)
    yield config.hub
    config.hub = previous
