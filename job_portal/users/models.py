from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import CharField
from django.db.models import EmailField
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    """
    Default custom user model for job_portal.

    A user is either a job seeker or an operator acting for one company.
    """

    class Role(models.TextChoices):
        SEEKER = "seeker", _("Job Seeker")
        COMPANY = "company", _("Company")

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Full Name"), blank=True, max_length=255)
    email = EmailField(_("email address"), unique=True)
    first_name = CharField(_("First Name"), max_length=150, blank=True)
    last_name = CharField(_("Last Name"), max_length=150, blank=True)
    role = CharField(
        _("Role"),
        max_length=20,
        choices=Role.choices,
        default=Role.SEEKER,
    )
    company = models.ForeignKey(
        "companies.Company",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="members",
    )
    # Audit timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        full_name = f"{self.first_name} {self.last_name}".strip()
        self.name = full_name
        super().save(*args, **kwargs)

    @property
    def is_seeker(self) -> bool:
        return self.role == self.Role.SEEKER

    def is_member_of(self, company_id: int | None) -> bool:
        """True when this user operates for the given company."""
        if company_id is None or self.company_id is None:
            return False
        return self.role == self.Role.COMPANY and self.company_id == company_id
