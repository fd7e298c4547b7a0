"""Production schedule endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..dependencies import get_workspace
from ..schemas import ScheduleReplace
from ..services.workspace import Workspace
from ..use_cases.production_schedules import delete_schedule_use_case, replace_schedules_use_case

router = APIRouter(prefix="/production-schedules", tags=["production-schedules"])


@router.get("")
def list_production_schedules(
    plan_date: str | None = Query(None, alias="planDate"),
    current_user: CurrentUser = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
):
    schedules = workspace.schedules
    if plan_date is not None:
        schedules = [s for s in schedules if s.plan_date == plan_date]
    return [s.to_document() for s in schedules]


@router.put("")
def replace_production_schedules(
    payload: ScheduleReplace,
    current_user: CurrentUser = Depends(PermissionChecker("canManageSchedules")),
    workspace: Workspace = Depends(get_workspace),
):
    """Replace the schedules of every plan date present in the upload."""
    rows = replace_schedules_use_case(workspace=workspace, schedules=payload.schedules)
    return [row.to_document() for row in rows]


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_production_schedule(
    schedule_id: str,
    current_user: CurrentUser = Depends(PermissionChecker("canManageSchedules")),
    workspace: Workspace = Depends(get_workspace),
):
    delete_schedule_use_case(workspace=workspace, schedule_id=schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
