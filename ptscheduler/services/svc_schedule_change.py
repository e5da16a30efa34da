from azure.cosmos.exceptions import CosmosBatchOperationError
from ptscheduler.configuration.config import Config
from ptscheduler.configuration.monitor import log_event, log_exception, log_rejection, start_span
from ptscheduler.models.mod_auth import AuthUser
from ptscheduler.models.mod_pt import PtRecord
from ptscheduler.models.mod_schedule import Schedule
from ptscheduler.models.mod_schedule_change import ScheduleChangeRequest, ScheduleChangeState
from ptscheduler.schemas.sch_schedule_change import (
    ExistingRequestResponse, ScheduleChangeCreate, ScheduleChangeDetail
)
from ptscheduler.services.svc_availability import AvailabilityService
from ptscheduler.services.svc_conflict import ConflictService
from ptscheduler.services.svc_timeslot import TimeSlotService
from ptscheduler.stores.sto_pt import PT_RECORD_TYPE, SCHEDULE_CHANGE_TYPE, PtStore, schedule_id
from ptscheduler.validators.val_errors import ConflictError, NotFoundError, SchedulingError
from ptscheduler.validators.val_schedule_change import ScheduleChangeValidator
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

CANCELLED_BY_REQUESTOR = "Cancelled by requestor"
CANCELLED_BY_NEWER_REQUEST = "Cancelled by a newer request"
CLOSED_AS_EXPIRED = "Closed after expiring without a response"

class ScheduleChangeService:
    """
    Change requests move a booked session to another time. A request is
    PENDING until the other participant approves or rejects it, or the
    requestor cancels it; expiry is checked when the request is used.
    """

    @staticmethod
    def _load_request(store: PtStore, request_id: str) -> Tuple[dict, ScheduleChangeRequest]:
        item = store.get_request(request_id)
        if not item:
            raise NotFoundError(f"Change request {request_id} not found")
        return item, ScheduleChangeRequest(**item)

    @staticmethod
    def _load_record(store: PtStore, record_id: str) -> Tuple[dict, PtRecord]:
        item = store.get_record(record_id)
        if not item:
            raise NotFoundError(f"Session {record_id} not found")
        return item, PtRecord(**item)

    @staticmethod
    def _current_schedule(record: PtRecord) -> Schedule:
        return Schedule(date=record.date, start_time=record.start_time, end_time=record.end_time)

    @staticmethod
    def _request_body(request: ScheduleChangeRequest) -> dict:
        body = request.model_dump(mode="json")
        body["type"] = SCHEDULE_CHANGE_TYPE
        return body

    @staticmethod
    def _record_body(record: PtRecord) -> dict:
        body = record.model_dump(mode="json")
        body["type"] = PT_RECORD_TYPE
        return body

    @staticmethod
    def closing_operation(item: dict, responder_id: str, message: str, now: datetime) -> Optional[tuple]:
        """Batch operation closing a still pending request as CANCELLED"""
        request = ScheduleChangeRequest(**item)
        if request.state != ScheduleChangeState.PENDING:
            return None
        request.state = ScheduleChangeState.CANCELLED
        request.responder_id = responder_id
        request.response_message = message
        request.responded_at = now
        return PtStore.replace_op(item, ScheduleChangeService._request_body(request))

    @staticmethod
    def _ensure_available(store: PtStore, record: PtRecord, requested: Schedule):
        """The requested time must be free for both participants, ignoring the session itself"""
        index = AvailabilityService.build_index(
            store,
            record.trainer_id,
            requested.date,
            requested.date + timedelta(days=1),
            member_id=record.member_id,
            exclude_record_id=record.id
        )
        checked = ConflictService.resolve_irregular(
            {requested.date: TimeSlotService.span_slots(requested.start_time, requested.end_time)},
            index
        )
        if not checked.success:
            raise ConflictError("The requested time is not available", code="slot_conflict")

    @staticmethod
    def _execute(store: PtStore, trainer_id: str, operations: list):
        try:
            store.execute_batch(trainer_id, operations)
        except CosmosBatchOperationError as e:
            if not PtStore.is_write_conflict(e):
                raise
            raise ConflictError(
                "The request was updated by someone else, please reload it",
                code="concurrent_update",
                retryable=True
            ) from e

    @staticmethod
    def create_request(store: PtStore, user: AuthUser, payload: ScheduleChangeCreate,
                       now: datetime) -> ScheduleChangeRequest:
        try:
            with start_span("create_schedule_change", attributes={
                "pt_record_id": payload.pt_record_id,
                "requestor_id": user.id
            }):
                log_event("Create schedule change started", {
                    "pt_record_id": payload.pt_record_id,
                    "requestor_id": user.id,
                    "requested_date": payload.requested.date.isoformat(),
                    "requested_start": payload.requested.start_time
                })

                record_item, record = ScheduleChangeService._load_record(store, payload.pt_record_id)
                ScheduleChangeValidator.validate_participant(user, record.member_id, record.trainer_id)
                current = ScheduleChangeService._current_schedule(record)
                ScheduleChangeValidator.validate_requested_schedule(payload.requested, current, now)
                ScheduleChangeValidator.validate_creation_cutoff(record, now)

                operations = []
                if record.pending_request_id:
                    existing_item = store.get_request_in_partition(record.trainer_id, record.pending_request_id)
                    if existing_item:
                        existing = ScheduleChangeRequest(**existing_item)
                        message = CLOSED_AS_EXPIRED
                        if existing.state == ScheduleChangeState.PENDING and not existing.is_expired(now):
                            if not (payload.force_cancel_existing and existing.requestor_id == user.id):
                                raise ConflictError(
                                    "A change request is already pending for this session",
                                    code="existing_request"
                                )
                            message = CANCELLED_BY_NEWER_REQUEST
                        closing = ScheduleChangeService.closing_operation(existing_item, user.id, message, now)
                        if closing:
                            operations.append(closing)

                ScheduleChangeService._ensure_available(store, record, payload.requested)

                request = ScheduleChangeRequest(
                    id=str(uuid.uuid4()),
                    pt_record_id=record.id,
                    pt_id=record.pt_id,
                    trainer_id=record.trainer_id,
                    member_id=record.member_id,
                    requestor_id=user.id,
                    reason=payload.reason,
                    original=current,
                    requested=payload.requested,
                    created_at=now,
                    expires_at=now + timedelta(hours=Config.CHANGE_REQUEST_EXPIRY_HOURS)
                )
                record.pending_request_id = request.id
                operations.append(PtStore.create_op(ScheduleChangeService._request_body(request)))
                operations.append(PtStore.replace_op(record_item, ScheduleChangeService._record_body(record)))
                ScheduleChangeService._execute(store, record.trainer_id, operations)

                log_event("Schedule change requested", {
                    "request_id": request.id,
                    "pt_record_id": record.id,
                    "requestor_id": user.id
                })
                return request
        except SchedulingError as e:
            log_rejection("create_schedule_change", e, {"pt_record_id": payload.pt_record_id, "user_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {
                "operation": "create_schedule_change",
                "pt_record_id": payload.pt_record_id
            })
            raise

    @staticmethod
    def approve(store: PtStore, user: AuthUser, request_id: str, now: datetime,
                response_message: str = None) -> ScheduleChangeRequest:
        """
        Move the session to the requested time. The request update, the
        session rebind and the slot ledger moves are one batch; the etag
        guard on the request makes the first response win.
        """
        try:
            with start_span("approve_schedule_change", attributes={"request_id": request_id, "user_id": user.id}):
                log_event("Approve schedule change started", {"request_id": request_id, "user_id": user.id})

                item, request = ScheduleChangeService._load_request(store, request_id)
                ScheduleChangeValidator.validate_respond(user, request, now)
                record_item, record = ScheduleChangeService._load_record(store, request.pt_record_id)
                if record.pending_request_id != request.id:
                    raise ConflictError("The session is no longer waiting on this request", code="stale_request")

                requested = request.requested
                current = ScheduleChangeService._current_schedule(record)
                ScheduleChangeService._ensure_available(store, record, requested)
                store.upsert_schedule(requested)
                ledgers = store.get_slot_ledgers(record.trainer_id, {current.date, requested.date})
                stale_ids = store.find_stale_claims(record.trainer_id, PtStore.ledger_holders(ledgers))
                if PtStore.claimed_by_others(ledgers.get(requested.date), requested, record.id, stale_ids):
                    raise ConflictError("The requested time is no longer available", code="slot_conflict")

                request.state = ScheduleChangeState.APPROVED
                request.responder_id = user.id
                request.response_message = response_message
                request.responded_at = now

                record.pt_schedule_id = schedule_id(requested)
                record.date = requested.date
                record.start_time = requested.start_time
                record.end_time = requested.end_time
                record.pending_request_id = None

                operations = [
                    PtStore.replace_op(item, ScheduleChangeService._request_body(request)),
                    PtStore.replace_op(record_item, ScheduleChangeService._record_body(record))
                ]
                operations.extend(PtStore.ledger_operations(
                    record.trainer_id,
                    ledgers,
                    claims={requested.date: PtStore.ledger_claims(requested, record.id)},
                    releases={current.date: PtStore.ledger_claims(current, record.id)}
                ))
                ScheduleChangeService._execute(store, record.trainer_id, operations)

                log_event("Schedule change approved", {
                    "request_id": request.id,
                    "pt_record_id": record.id,
                    "responder_id": user.id
                })
                return request
        except SchedulingError as e:
            log_rejection("approve_schedule_change", e, {"request_id": request_id, "user_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {"operation": "approve_schedule_change", "request_id": request_id})
            raise

    @staticmethod
    def _close(store: PtStore, item: dict, request: ScheduleChangeRequest, user: AuthUser,
               state: ScheduleChangeState, message: Optional[str], now: datetime) -> ScheduleChangeRequest:
        """Finish a request without moving the session"""
        request.state = state
        request.responder_id = user.id
        request.response_message = message
        request.responded_at = now
        operations = [PtStore.replace_op(item, ScheduleChangeService._request_body(request))]

        record_item = store.get_record(request.pt_record_id)
        if record_item:
            record = PtRecord(**record_item)
            if record.pending_request_id == request.id:
                record.pending_request_id = None
                operations.append(PtStore.replace_op(record_item, ScheduleChangeService._record_body(record)))
        ScheduleChangeService._execute(store, request.trainer_id, operations)
        return request

    @staticmethod
    def reject(store: PtStore, user: AuthUser, request_id: str, now: datetime,
               response_message: str = None) -> ScheduleChangeRequest:
        try:
            with start_span("reject_schedule_change", attributes={"request_id": request_id, "user_id": user.id}):
                log_event("Reject schedule change started", {"request_id": request_id, "user_id": user.id})
                item, request = ScheduleChangeService._load_request(store, request_id)
                ScheduleChangeValidator.validate_respond(user, request, now)
                request = ScheduleChangeService._close(
                    store, item, request, user, ScheduleChangeState.REJECTED, response_message, now
                )
                log_event("Schedule change rejected", {"request_id": request_id, "responder_id": user.id})
                return request
        except SchedulingError as e:
            log_rejection("reject_schedule_change", e, {"request_id": request_id, "user_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {"operation": "reject_schedule_change", "request_id": request_id})
            raise

    @staticmethod
    def cancel(store: PtStore, user: AuthUser, request_id: str, now: datetime) -> ScheduleChangeRequest:
        try:
            with start_span("cancel_schedule_change", attributes={"request_id": request_id, "user_id": user.id}):
                log_event("Cancel schedule change started", {"request_id": request_id, "user_id": user.id})
                item, request = ScheduleChangeService._load_request(store, request_id)
                ScheduleChangeValidator.validate_cancel(user, request, now)
                request = ScheduleChangeService._close(
                    store, item, request, user, ScheduleChangeState.CANCELLED, CANCELLED_BY_REQUESTOR, now
                )
                log_event("Schedule change cancelled", {"request_id": request_id, "requestor_id": user.id})
                return request
        except SchedulingError as e:
            log_rejection("cancel_schedule_change", e, {"request_id": request_id, "user_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {"operation": "cancel_schedule_change", "request_id": request_id})
            raise

    @staticmethod
    def check_existing(store: PtStore, user: AuthUser, pt_record_id: str, now: datetime) -> ExistingRequestResponse:
        """Whether the session has a live pending request; expired ones do not count"""
        try:
            with start_span("check_existing_schedule_change", attributes={"pt_record_id": pt_record_id}):
                _, record = ScheduleChangeService._load_record(store, pt_record_id)
                ScheduleChangeValidator.validate_participant(user, record.member_id, record.trainer_id)
                if record.pending_request_id:
                    item = store.get_request_in_partition(record.trainer_id, record.pending_request_id)
                    if item:
                        request = ScheduleChangeRequest(**item)
                        if request.state == ScheduleChangeState.PENDING and not request.is_expired(now):
                            return ExistingRequestResponse(pt_record_id=record.id, has_pending=True, request=request)
                return ExistingRequestResponse(pt_record_id=record.id, has_pending=False)
        except SchedulingError as e:
            log_rejection("check_existing_schedule_change", e, {"pt_record_id": pt_record_id, "user_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {"operation": "check_existing_schedule_change", "pt_record_id": pt_record_id})
            raise

    @staticmethod
    def get_detail(store: PtStore, user: AuthUser, request_id: str, now: datetime) -> ScheduleChangeDetail:
        try:
            with start_span("get_schedule_change_detail", attributes={"request_id": request_id}):
                _, request = ScheduleChangeService._load_request(store, request_id)
                ScheduleChangeValidator.validate_participant(user, request.member_id, request.trainer_id)
                record_item = store.get_record(request.pt_record_id)
                if record_item:
                    current = ScheduleChangeService._current_schedule(PtRecord(**record_item))
                else:
                    current = request.original
                is_expired = request.is_expired(now)
                is_mine = request.requestor_id == user.id
                return ScheduleChangeDetail(
                    request=request,
                    current=current,
                    is_expired=is_expired,
                    can_respond=request.state == ScheduleChangeState.PENDING and not is_expired and not is_mine,
                    is_my_request=is_mine
                )
        except SchedulingError as e:
            log_rejection("get_schedule_change_detail", e, {"request_id": request_id, "user_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {"operation": "get_schedule_change_detail", "request_id": request_id})
            raise

    @staticmethod
    def list_for_user(store: PtStore, user: AuthUser) -> List[ScheduleChangeRequest]:
        """Requests on the user's sessions, newest first"""
        try:
            with start_span("list_schedule_changes", attributes={"user_id": user.id}):
                requests = [ScheduleChangeRequest(**item) for item in store.list_requests_for_user(user.id)]
                log_event("Schedule changes retrieved", {"user_id": user.id, "count": len(requests)})
                return requests
        except Exception as e:
            log_exception(e, {"operation": "list_schedule_changes", "user_id": user.id})
            raise
