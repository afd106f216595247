# web/task_routes.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.sync_log import get_logger
from services.sync_service import REMOTE_ERRORS
from web.deps import get_services


router = APIRouter(prefix="/api/admin/tasks")
logger = get_logger("web")


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None


class TaskUpdate(BaseModel):
    id: int
    title: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None
    completed: Optional[bool] = None
    completed_date: Optional[date] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    sort_order: Optional[int] = None


@router.get("")
def list_tasks(request: Request):
    tasks = get_services(request).tasks
    return {"tasks": jsonable_encoder(tasks.list_all()), "stats": tasks.stats()}


@router.post("")
def create_task(body: TaskCreate, request: Request):
    tasks = get_services(request).tasks
    try:
        task = tasks.add(**body.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"task": jsonable_encoder(task)}


@router.patch("")
def update_task(body: TaskUpdate, request: Request):
    tasks = get_services(request).tasks
    changes = body.model_dump(exclude_unset=True)
    task_id = changes.pop("id")
    try:
        task = tasks.update(task_id, **changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"task": jsonable_encoder(task)}


@router.delete("")
def delete_task(request: Request, task_id: int = Body(..., embed=True, alias="id")):
    if not get_services(request).sync.delete_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True}


# ---------------------------------------------------------------------------
# Microsoft To Do sync


@router.get("/sync")
def sync_status(request: Request):
    return get_services(request).sync.status()


@router.post("/sync")
def run_sync(request: Request):
    result = get_services(request).sync.sync()
    if not result.connected:
        return JSONResponse(
            {"error": "Microsoft not connected", "connected": False}, status_code=401
        )
    return {"success": True, "connected": True, "results": result.to_dict()}


@router.put("/sync")
def setup_webhook(request: Request):
    sync = get_services(request).sync
    try:
        subscription = sync.setup_webhook()
    except REMOTE_ERRORS as exc:
        logger.error("Webhook setup error: %s", exc)
        return JSONResponse(
            {"error": "Failed to setup webhook", "details": str(exc)}, status_code=500
        )
    if subscription is None:
        return JSONResponse({"error": "Microsoft not connected"}, status_code=401)
    return {
        "success": True,
        "subscriptionId": subscription["id"],
        "expiresAt": subscription["expirationDateTime"],
    }


@router.delete("/sync")
def disconnect(request: Request):
    unlinked = get_services(request).sync.disconnect()
    return {"success": True, "unlinked": unlinked}
