from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model

from clinic.models import AuditEvent

User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None,
               object_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    """Persist one audit trail entry. Anonymous users are stored as ``None``."""
    if not (isinstance(user, User) and user.pk):
        user = None
    return AuditEvent.objects.create(
        user=user,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )
