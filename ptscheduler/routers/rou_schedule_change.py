from fastapi import APIRouter, Depends
from datetime import datetime
from typing import List, Optional
from ptscheduler.configuration.clock import get_current_time
from ptscheduler.configuration.database import get_store
from ptscheduler.dependencies.dep_auth import get_current_user
from ptscheduler.models.mod_auth import AuthUser
from ptscheduler.models.mod_schedule_change import ScheduleChangeRequest
from ptscheduler.schemas.sch_schedule_change import (
    ExistingRequestResponse, ScheduleChangeCreate, ScheduleChangeDetail, ScheduleChangeRespond
)
from ptscheduler.services.svc_schedule_change import ScheduleChangeService
from ptscheduler.stores.sto_pt import PtStore

router = APIRouter(
    prefix="/schedule-changes",
    tags=["Schedule changes"],
    responses={404: {"description": "Not found"}},
)

@router.post('/', response_model=ScheduleChangeRequest, status_code=201)
def create_schedule_change(
    payload: ScheduleChangeCreate,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    Ask to move a booked session to another time.

    - Only the member or the trainer of the session can ask
    - The session must start at least 24 hours from now
    - A session has at most one pending request; set force_cancel_existing
      to replace your own
    - The request expires after 48 hours without a response
    """
    return ScheduleChangeService.create_request(store, current_user, payload, now)

@router.get('/', response_model=List[ScheduleChangeRequest])
def list_schedule_changes(
    store: PtStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user)
):
    """Change requests on the caller's sessions, newest first"""
    return ScheduleChangeService.list_for_user(store, current_user)

@router.get('/check-existing', response_model=ExistingRequestResponse)
def check_existing_schedule_change(
    pt_record_id: str,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """Whether the session already has a pending, unexpired request"""
    return ScheduleChangeService.check_existing(store, current_user, pt_record_id, now)

@router.get('/{request_id}', response_model=ScheduleChangeDetail)
def get_schedule_change(
    request_id: str,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    return ScheduleChangeService.get_detail(store, current_user, request_id, now)

@router.post('/{request_id}/approve', response_model=ScheduleChangeRequest)
def approve_schedule_change(
    request_id: str,
    response: Optional[ScheduleChangeRespond] = None,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """
    Accept the other participant's request; the session moves to the
    requested time.
    """
    return ScheduleChangeService.approve(store, current_user, request_id, now, response.response_message if response else None)

@router.post('/{request_id}/reject', response_model=ScheduleChangeRequest)
def reject_schedule_change(
    request_id: str,
    response: Optional[ScheduleChangeRespond] = None,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    return ScheduleChangeService.reject(store, current_user, request_id, now, response.response_message if response else None)

@router.post('/{request_id}/cancel', response_model=ScheduleChangeRequest)
def cancel_schedule_change(
    request_id: str,
    store: PtStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
    current_user: AuthUser = Depends(get_current_user)
):
    """Withdraw your own pending request"""
    return ScheduleChangeService.cancel(store, current_user, request_id, now)
