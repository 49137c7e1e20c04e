from django.db import models


class Company(models.Model):
    """Employer account; operators are users with ``company`` set to it."""

    name = models.CharField(max_length=150, unique=True, db_index=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "companies"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name
