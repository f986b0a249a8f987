"""Administrative endpoints for the content scheduler."""

from litestar import Controller, get, post
from litestar.di import Provide

from folio.auth.dependencies import provide_actor, require_permission
from folio.auth.roles import RUN_SCHEDULER
from folio.workflow.guards import Actor
from folio.workflow.scheduler import ContentScheduler


class SchedulerController(Controller):
    path = "/api/scheduler"
    dependencies = {"actor": Provide(provide_actor)}

    @post("/run", status_code=200)
    async def run(self, scheduler: ContentScheduler, actor: Actor) -> dict:
        """Run one scheduler tick now and report what it did."""
        require_permission(actor, RUN_SCHEDULER)
        run = await scheduler.run_once()
        return {"run": run.to_dict(), "metrics": scheduler.get_metrics().to_dict()}

    @get("/metrics")
    async def metrics(self, scheduler: ContentScheduler, actor: Actor) -> dict:
        require_permission(actor, RUN_SCHEDULER)
        return {**scheduler.get_metrics().to_dict(), "running": scheduler.running}

    @post("/reset-metrics", status_code=200)
    async def reset_metrics(self, scheduler: ContentScheduler, actor: Actor) -> dict:
        require_permission(actor, RUN_SCHEDULER)
        return scheduler.reset_metrics().to_dict()
