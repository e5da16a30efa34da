import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient
from fastapi import FastAPI
from datetime import date, datetime, timedelta, timezone

from ptscheduler.configuration.clock import get_current_time
from ptscheduler.configuration.database import get_store
from ptscheduler.dependencies.dep_auth import get_current_user
from ptscheduler.models.mod_auth import AuthUser, UserRole
from ptscheduler.models.mod_schedule import Schedule
from ptscheduler.models.mod_schedule_change import ScheduleChangeRequest, ScheduleChangeState
from ptscheduler.routers.rou_schedule_change import router
from ptscheduler.schemas.sch_schedule_change import ExistingRequestResponse, ScheduleChangeDetail
from ptscheduler.services.svc_schedule_change import ScheduleChangeService
from ptscheduler.validators.val_errors import (
    AuthorizationError, ConflictError, CutoffViolationError, NotFoundError
)

NOW = datetime(2030, 1, 7, 0, 0, tzinfo=timezone.utc)
TRAINER = AuthUser(id="trainer1", name="Trainer One", role=UserRole.TRAINER)

app = FastAPI()
app.include_router(router)

store = MagicMock()
app.dependency_overrides[get_current_user] = lambda: TRAINER
app.dependency_overrides[get_store] = lambda: store
app.dependency_overrides[get_current_time] = lambda: NOW

@pytest.fixture
def client():
    return TestClient(app)

@pytest.fixture
def mock_change_service():
    with patch.object(ScheduleChangeService, 'create_request') as mock_create, \
         patch.object(ScheduleChangeService, 'list_for_user') as mock_list, \
         patch.object(ScheduleChangeService, 'check_existing') as mock_existing, \
         patch.object(ScheduleChangeService, 'get_detail') as mock_detail, \
         patch.object(ScheduleChangeService, 'approve') as mock_approve, \
         patch.object(ScheduleChangeService, 'reject') as mock_reject, \
         patch.object(ScheduleChangeService, 'cancel') as mock_cancel:

        yield {
            'create_request': mock_create,
            'list_for_user': mock_list,
            'check_existing': mock_existing,
            'get_detail': mock_detail,
            'approve': mock_approve,
            'reject': mock_reject,
            'cancel': mock_cancel
        }

@pytest.fixture
def sample_request():
    return ScheduleChangeRequest(
        id="req1",
        pt_record_id="r1",
        pt_id="pt1",
        trainer_id="trainer1",
        member_id="member1",
        requestor_id="trainer1",
        reason="Seminar on Thursday",
        original=Schedule(date=date(2030, 1, 10), start_time=1400, end_time=1500),
        requested=Schedule(date=date(2030, 1, 11), start_time=1000, end_time=1100),
        created_at=NOW,
        expires_at=NOW + timedelta(hours=48)
    )

@pytest.fixture
def create_payload():
    return {
        "pt_record_id": "r1",
        "requested": {"date": "2030-01-11", "start_time": 1000, "end_time": 1100},
        "reason": "Seminar on Thursday"
    }

def answered(request, state, message=None):
    return request.model_copy(update={
        "state": state,
        "responder_id": "trainer1",
        "response_message": message,
        "responded_at": NOW
    })

def test_create_schedule_change(client, mock_change_service, sample_request, create_payload):
    mock_change_service['create_request'].return_value = sample_request
    response = client.post("/schedule-changes/", json=create_payload)

    assert response.status_code == 201
    assert response.json()["id"] == "req1"
    assert response.json()["state"] == "PENDING"

    args = mock_change_service['create_request'].call_args[0]
    assert args[1] == TRAINER
    assert args[2].requested == Schedule(date=date(2030, 1, 11), start_time=1000, end_time=1100)
    assert args[2].force_cancel_existing is False
    assert args[3] == NOW

def test_create_requires_reason(client, mock_change_service, create_payload):
    create_payload["reason"] = ""
    response = client.post("/schedule-changes/", json=create_payload)

    assert response.status_code == 422
    mock_change_service['create_request'].assert_not_called()

def test_create_inside_cutoff(client, mock_change_service, create_payload):
    mock_change_service['create_request'].side_effect = CutoffViolationError(
        "Changes must be requested at least 24 hours before the session starts"
    )
    response = client.post("/schedule-changes/", json=create_payload)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "cutoff_violation"

def test_create_while_request_pending(client, mock_change_service, create_payload):
    mock_change_service['create_request'].side_effect = ConflictError(
        "A change request is already pending for this session", code="existing_request"
    )
    response = client.post("/schedule-changes/", json=create_payload)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "existing_request"

def test_list_schedule_changes(client, mock_change_service, sample_request):
    mock_change_service['list_for_user'].return_value = [sample_request]
    response = client.get("/schedule-changes/")

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == ["req1"]
    mock_change_service['list_for_user'].assert_called_once_with(store, TRAINER)

def test_check_existing(client, mock_change_service, sample_request):
    mock_change_service['check_existing'].return_value = ExistingRequestResponse(
        pt_record_id="r1", has_pending=True, request=sample_request
    )
    response = client.get("/schedule-changes/check-existing", params={"pt_record_id": "r1"})

    assert response.status_code == 200
    assert response.json()["has_pending"] is True
    mock_change_service['check_existing'].assert_called_once_with(store, TRAINER, "r1", NOW)
    mock_change_service['get_detail'].assert_not_called()

def test_get_detail(client, mock_change_service, sample_request):
    mock_change_service['get_detail'].return_value = ScheduleChangeDetail(
        request=sample_request,
        current=sample_request.original,
        is_expired=False,
        can_respond=False,
        is_my_request=True
    )
    response = client.get("/schedule-changes/req1")

    assert response.status_code == 200
    assert response.json()["is_my_request"] is True
    assert response.json()["current"]["start_time"] == 1400

def test_get_detail_not_found(client, mock_change_service):
    mock_change_service['get_detail'].side_effect = NotFoundError("Change request nope not found")
    response = client.get("/schedule-changes/nope")
    assert response.status_code == 404

def test_approve_with_message(client, mock_change_service, sample_request):
    mock_change_service['approve'].return_value = answered(sample_request, ScheduleChangeState.APPROVED, "OK")
    response = client.post("/schedule-changes/req1/approve", json={"response_message": "OK"})

    assert response.status_code == 200
    assert response.json()["state"] == "APPROVED"
    mock_change_service['approve'].assert_called_once_with(store, TRAINER, "req1", NOW, "OK")

def test_approve_without_body(client, mock_change_service, sample_request):
    mock_change_service['approve'].return_value = answered(sample_request, ScheduleChangeState.APPROVED)
    response = client.post("/schedule-changes/req1/approve")

    assert response.status_code == 200
    mock_change_service['approve'].assert_called_once_with(store, TRAINER, "req1", NOW, None)

def test_approve_own_request(client, mock_change_service):
    mock_change_service['approve'].side_effect = AuthorizationError(
        "You cannot respond to your own request", code="self_response"
    )
    response = client.post("/schedule-changes/req1/approve")

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "self_response"

def test_approve_concurrent_update(client, mock_change_service):
    mock_change_service['approve'].side_effect = ConflictError(
        "The request was updated by someone else, please reload it", code="concurrent_update", retryable=True
    )
    response = client.post("/schedule-changes/req1/approve")

    assert response.status_code == 409
    assert response.json()["detail"]["retryable"] is True

def test_reject(client, mock_change_service, sample_request):
    mock_change_service['reject'].return_value = answered(sample_request, ScheduleChangeState.REJECTED, "Busy")
    response = client.post("/schedule-changes/req1/reject", json={"response_message": "Busy"})

    assert response.status_code == 200
    assert response.json()["response_message"] == "Busy"

def test_reject_expired(client, mock_change_service):
    mock_change_service['reject'].side_effect = CutoffViolationError("The request has expired", code="request_expired")
    response = client.post("/schedule-changes/req1/reject")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "request_expired"

def test_cancel(client, mock_change_service, sample_request):
    mock_change_service['cancel'].return_value = answered(
        sample_request, ScheduleChangeState.CANCELLED, "Cancelled by requestor"
    )
    response = client.post("/schedule-changes/req1/cancel")

    assert response.status_code == 200
    assert response.json()["state"] == "CANCELLED"
    mock_change_service['cancel'].assert_called_once_with(store, TRAINER, "req1", NOW)
