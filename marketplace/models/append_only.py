# marketplace/models/append_only.py
from sqlalchemy import event

from marketplace.core.exceptions import ValidationError


def protect_append_only(model) -> None:
    """Refuse ORM-level UPDATE and DELETE of ``model`` rows once inserted."""

    @event.listens_for(model, "before_update")
    def _refuse_update(mapper, connection, target):
        raise ValidationError(f"{model.__tablename__} records are append-only and cannot be modified")

    @event.listens_for(model, "before_delete")
    def _refuse_delete(mapper, connection, target):
        raise ValidationError(f"{model.__tablename__} records are append-only and cannot be deleted")
