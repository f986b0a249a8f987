from folio.db.models.content_item import ContentItem
from folio.db.models.content_version import ContentVersion
from folio.db.models.user import User
from folio.db.models.workflow_history import WorkflowHistoryEntry

__all__ = ["ContentItem", "ContentVersion", "User", "WorkflowHistoryEntry"]
