"""
Admin HTTP API.

    GET    /ready                         liveness probe
    GET    /api/healthcheck.json          can both backends be reached?
    GET    /api/overrides.json            active overrides
    POST   /api/overrides.json            register an override
    DELETE /api/overrides/{component}     drop an override early
    POST   /api/cycle                     run a reconciliation cycle now
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from aiohttp import web

from spcontroller import notifier
from spcontroller.models import KNOWN_STATUSES
from spcontroller.overrides import MAX_OVERRIDE_SECONDS
from spcontroller.reconciler import Reconciler
from spcontroller.scheduler import CycleScheduler

RECONCILER_KEY = web.AppKey("reconciler", Reconciler)
SCHEDULER_KEY = web.AppKey("scheduler", CycleScheduler)


def create_app(reconciler: Reconciler, scheduler: CycleScheduler) -> web.Application:
    app = web.Application()
    app[RECONCILER_KEY] = reconciler
    app[SCHEDULER_KEY] = scheduler

    app.router.add_get("/ready", ready)
    app.router.add_get("/api/healthcheck.json", healthcheck)
    app.router.add_get("/api/overrides.json", list_overrides)
    app.router.add_post("/api/overrides.json", add_override)
    app.router.add_delete("/api/overrides/{component_name}", delete_override)
    app.router.add_post("/api/cycle", run_cycle)
    return app


async def ready(request: web.Request) -> web.Response:
    return web.Response(text="ready")


async def healthcheck(request: web.Request) -> web.Response:
    ok, message = await request.app[RECONCILER_KEY].health_check()
    return web.json_response({"ok": ok, "message": message})


async def list_overrides(request: web.Request) -> web.Response:
    overrides = request.app[RECONCILER_KEY].overrides.snapshot()
    return web.json_response({key: o.to_dict() for key, o in overrides.items()})


async def add_override(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return _bad_request("request body must be JSON")

    parsed, error = validate_override_payload(payload)
    if error:
        return _bad_request(error)

    component_name, seconds, new_status = parsed
    override = await request.app[RECONCILER_KEY].register_override(
        component_name, seconds, new_status
    )
    return web.json_response({
        "message": "Successfully added override",
        "component_name": component_name,
        "seconds": override.seconds,
    })


async def delete_override(request: web.Request) -> web.Response:
    name = request.match_info["component_name"]
    if not request.app[RECONCILER_KEY].overrides.clear(name):
        return web.json_response({"message": f"no override for {name}"}, status=404)
    notifier.print_info("overrides", f"{name} override cleared")
    return web.json_response({"message": "Successfully removed override", "component_name": name})


async def run_cycle(request: web.Request) -> web.Response:
    scheduler = request.app[SCHEDULER_KEY]
    if scheduler.running_cycle:
        return web.json_response({"message": "a cycle is already running"}, status=409)

    report = await scheduler.tick()
    if report is None:
        return web.json_response({"message": "cycle did not complete"}, status=503)
    return web.json_response({
        "skipped": report.skipped,
        "reason": report.reason,
        "updated": report.updated,
        "failed": report.failed,
    })


def validate_override_payload(
    payload: Any,
) -> Tuple[Optional[Tuple[str, float, Optional[str]]], Optional[str]]:
    """
    Check an override request body.

    Returns ``((component_name, seconds, new_status), None)`` when valid,
    ``(None, error_message)`` otherwise.
    """
    if not isinstance(payload, dict):
        return None, "body must be a JSON object"

    name = payload.get("component_name")
    if not isinstance(name, str) or not name.strip():
        return None, "component_name is required"

    seconds = payload.get("seconds")
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None, "seconds must be a number"
    if not 0 <= seconds <= MAX_OVERRIDE_SECONDS:
        return None, f"seconds must be between 0 and {MAX_OVERRIDE_SECONDS}"

    new_status = payload.get("new_status")
    if new_status is not None:
        if not isinstance(new_status, str) or new_status.strip().lower() not in KNOWN_STATUSES:
            return None, "new_status must be one of: " + ", ".join(KNOWN_STATUSES)
        new_status = new_status.strip().lower()

    return (name, seconds, new_status), None


def _bad_request(message: str) -> web.Response:
    body: Dict[str, Any] = {"message": message}
    return web.json_response(body, status=400)
