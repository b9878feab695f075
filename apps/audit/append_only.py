"""Append-only base classes shared by ledger-style models.

Rows may be created; they may never be updated or deleted through the ORM.
Real protection belongs at the database role level; this stops application
code from doing it by accident.
"""
from django.db import models


class AppendOnlyQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of existing rows."""

    def _refuse(self, verb):
        raise PermissionError(
            f"{self.model._meta.verbose_name_plural.capitalize()} are append-only "
            f"and cannot be {verb}."
        )

    def update(self, **kwargs):
        self._refuse("updated")

    def delete(self):
        self._refuse("deleted")


class AppendOnlyManager(models.Manager):
    """Manager returning an AppendOnlyQuerySet.

    .create() and .bulk_create() are not overridden; appending new rows is
    the only permitted mutation.
    """

    def get_queryset(self):
        return AppendOnlyQuerySet(self.model, using=self._db)


class AppendOnlyModel(models.Model):
    """Abstract base for ledger rows: insert once, never change or remove."""

    objects = AppendOnlyManager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise PermissionError(
                f"{self._meta.verbose_name.capitalize()} rows are append-only "
                "and cannot be modified."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionError(
            f"{self._meta.verbose_name.capitalize()} rows are append-only "
            "and cannot be deleted."
        )
