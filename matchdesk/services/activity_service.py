# matchdesk/services/activity_service.py
from ..models.activity import TaskActivity


def log_activity(session, *, task_id, action, actor_id=None, actor_type="system",
                 previous_status=None, new_status=None, metadata=None) -> TaskActivity:
    """Append an audit row inside the caller's transaction."""
    row = TaskActivity(
        task_id=task_id,
        actor_id=actor_id,
        actor_type=actor_type,
        action=action,
        previous_status=previous_status,
        new_status=new_status,
        meta=metadata or {},
    )
    session.add(row)
    return row
