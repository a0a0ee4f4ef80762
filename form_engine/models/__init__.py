from form_engine.models.account import Role, User, UserRole
from form_engine.models.audit_event import AuditEvent
from form_engine.models.form import Form
from form_engine.models.form_version import FormVersion
from form_engine.models.task_form import TaskForm

__all__ = [ "AuditEvent", "Form", "FormVersion",
           "Role", "TaskForm", "User", "UserRole" ]
