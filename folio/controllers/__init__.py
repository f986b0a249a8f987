from folio.controllers.content import ContentController
from folio.controllers.scheduler import SchedulerController

__all__ = ["ContentController", "SchedulerController"]
