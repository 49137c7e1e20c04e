import pytest

from job_portal.users.models import User

pytestmark = pytest.mark.django_db


def test_user_name_from_first_and_last(seeker):
    assert seeker.name == "Sam Seeker"
    assert seeker.is_seeker


def test_company_membership(company, other_company, company_member, seeker):
    assert company_member.is_member_of(company.pk)
    assert not company_member.is_member_of(other_company.pk)
    assert not company_member.is_member_of(None)
    assert not company_member.is_seeker
    assert not seeker.is_member_of(company.pk)


def test_seeker_with_company_is_not_a_member(company):
    user = User.objects.create_user(
        username="odd",
        email="odd@example.com",
        password="Odd-pass-123",  # noqa: S106
        role=User.Role.SEEKER,
        company=company,
    )
    assert not user.is_member_of(company.pk)
