from azure.cosmos.exceptions import CosmosBatchOperationError
from ptscheduler.configuration.config import Config
from ptscheduler.configuration.monitor import log_event, log_exception, log_metric, log_rejection, start_span
from ptscheduler.models.mod_auth import AuthUser
from ptscheduler.models.mod_pt import Pt, PtProduct, PtRecord, PtState
from ptscheduler.models.mod_schedule import CheckedSchedule, DaySchedule, Schedule
from ptscheduler.schemas.sch_schedule import BookingResult, CancelBookingResponse, ScheduleCheckRequest
from ptscheduler.services.svc_availability import AvailabilityService
from ptscheduler.services.svc_conflict import ConflictService
from ptscheduler.services.svc_schedule_change import ScheduleChangeService
from ptscheduler.stores.sto_pt import PT_RECORD_TYPE, PT_TYPE, PtStore, schedule_id
from ptscheduler.validators.val_errors import AuthorizationError, ConflictError, NotFoundError, SchedulingError
from ptscheduler.validators.val_schedule import ScheduleValidator
import uuid
from datetime import date, datetime, timedelta
from typing import List, Set, Tuple

CANCELLED_WITH_BOOKING = "Cancelled with the booking"

class BookingService:
    @staticmethod
    def _get_product(store: PtStore, product_id: str) -> PtProduct:
        item = store.get_product(product_id)
        if not item:
            raise NotFoundError(f"PT product {product_id} not found")
        return PtProduct(**item)

    @staticmethod
    def _index_window(chosen: DaySchedule, is_regular: bool, horizon_weeks: int) -> Tuple[date, date]:
        """
        Date range the availability index must cover for this selection.
        Each regular anchor projects horizon_weeks from its own date.
        """
        first, last = min(chosen), max(chosen)
        if is_regular:
            return first, last + timedelta(weeks=horizon_weeks)
        return first, last + timedelta(days=1)

    @staticmethod
    def check_schedule(store: PtStore, user: AuthUser, request: ScheduleCheckRequest, now: datetime,
                       horizon_weeks: int = Config.REGULAR_HORIZON_WEEKS) -> CheckedSchedule:
        """
        Validate a member's selection and split it into bookable and
        conflicting sessions. Nothing is written.
        """
        try:
            with start_span("check_schedule", attributes={
                "member_id": user.id,
                "trainer_id": request.trainer_id,
                "is_regular": request.is_regular
            }):
                log_event("Schedule check started", {
                    "member_id": user.id,
                    "trainer_id": request.trainer_id,
                    "pt_product_id": request.pt_product_id,
                    "dates": len(request.day_schedule)
                })

                ScheduleValidator.validate_member(user)
                product = BookingService._get_product(store, request.pt_product_id)
                ScheduleValidator.validate_check_request(request, product, now)

                chosen = {day: slots for day, slots in request.day_schedule.items() if slots}
                from_date, to_date = BookingService._index_window(chosen, request.is_regular, horizon_weeks)
                index = AvailabilityService.build_index(
                    store, request.trainer_id, from_date, to_date, member_id=user.id
                )

                if request.is_regular:
                    checked = ConflictService.resolve_regular(chosen, product.total_count, index, horizon_weeks)
                else:
                    checked = ConflictService.resolve_irregular(chosen, index)

                log_metric("schedule_check_success", len(checked.success), {"trainer_id": request.trainer_id})
                log_metric("schedule_check_fail", len(checked.fail), {"trainer_id": request.trainer_id})
                return checked
        except SchedulingError as e:
            log_rejection("check_schedule", e, {"member_id": user.id, "trainer_id": request.trainer_id})
            raise
        except Exception as e:
            log_exception(e, {
                "operation": "check_schedule",
                "member_id": user.id,
                "trainer_id": request.trainer_id
            })
            raise

    @staticmethod
    def confirm_booking(store: PtStore, user: AuthUser, request: ScheduleCheckRequest, now: datetime,
                        horizon_weeks: int = Config.REGULAR_HORIZON_WEEKS) -> BookingResult:
        """Re-run the check against current data, then write what is still bookable"""
        checked = BookingService.check_schedule(store, user, request, now, horizon_weeks)
        if not checked.success:
            error = ConflictError("None of the selected sessions are available")
            log_rejection("confirm_booking", error, {"member_id": user.id, "trainer_id": request.trainer_id})
            raise error
        return BookingService.write_booking(
            store,
            member_id=user.id,
            trainer_id=request.trainer_id,
            pt_product_id=request.pt_product_id,
            checked=checked,
            is_regular=request.is_regular,
            now=now
        )

    @staticmethod
    def _split_by_ledger(schedules: List[Schedule], ledgers: dict,
                         stale_ids: Set[str] = frozenset()) -> Tuple[List[Schedule], List[Schedule]]:
        available, taken = [], []
        for schedule in schedules:
            if PtStore.claimed_by_others(ledgers.get(schedule.date), schedule, stale_ids=stale_ids):
                taken.append(schedule)
            else:
                available.append(schedule)
        return available, taken

    @staticmethod
    def _booking_operations(pt: Pt, week_time_ids: List[str], schedules: List[Schedule],
                            ledgers: dict) -> Tuple[list, List[PtRecord]]:
        pt_doc = pt.model_dump(mode="json")
        pt_doc["type"] = PT_TYPE
        pt_doc["week_time_ids"] = week_time_ids
        operations = [PtStore.create_op(pt_doc)]

        records = []
        claims = {}
        for schedule in schedules:
            record = PtRecord(
                id=str(uuid.uuid4()),
                pt_id=pt.id,
                trainer_id=pt.trainer_id,
                member_id=pt.member_id,
                pt_schedule_id=schedule_id(schedule),
                date=schedule.date,
                start_time=schedule.start_time,
                end_time=schedule.end_time
            )
            record_doc = record.model_dump(mode="json")
            record_doc["type"] = PT_RECORD_TYPE
            operations.append(PtStore.create_op(record_doc))
            claims.setdefault(schedule.date, {}).update(PtStore.ledger_claims(schedule, record.id))
            records.append(record)

        operations.extend(PtStore.ledger_operations(pt.trainer_id, ledgers, claims=claims))
        return operations, records

    @staticmethod
    def write_booking(store: PtStore, member_id: str, trainer_id: str, pt_product_id: str,
                      checked: CheckedSchedule, is_regular: bool, now: datetime) -> BookingResult:
        """
        Persist a booking and its sessions in one transactional batch.

        Sessions whose slots were claimed since the check are left out of
        the booking. A batch that fails because the ledgers changed under it
        is re-read and retried up to BOOKING_WRITE_ATTEMPTS times.
        """
        schedules = sorted(checked.success, key=lambda s: s.sort_key())
        try:
            with start_span("write_booking", attributes={
                "member_id": member_id,
                "trainer_id": trainer_id,
                "sessions": len(schedules)
            }):
                log_event("Booking write started", {
                    "member_id": member_id,
                    "trainer_id": trainer_id,
                    "pt_product_id": pt_product_id,
                    "sessions": len(schedules)
                })
                ScheduleValidator.validate_batch_size(len(schedules), len({s.date for s in schedules}))

                week_time_ids = [store.upsert_week_time(week) for week in checked.week_schedules] if is_regular else []
                for schedule in schedules:
                    store.upsert_schedule(schedule)

                for attempt in range(1, Config.BOOKING_WRITE_ATTEMPTS + 1):
                    ledgers = store.get_slot_ledgers(trainer_id, {s.date for s in schedules})
                    stale_ids = store.find_stale_claims(trainer_id, PtStore.ledger_holders(ledgers))
                    available, taken = BookingService._split_by_ledger(schedules, ledgers, stale_ids)
                    if not available:
                        raise ConflictError(
                            "The selected sessions were booked by someone else",
                            code="slots_taken",
                            retryable=True
                        )

                    pt = Pt(
                        id=str(uuid.uuid4()),
                        member_id=member_id,
                        trainer_id=trainer_id,
                        pt_product_id=pt_product_id,
                        start_date=available[0].date,
                        is_regular=is_regular,
                        week_times=checked.week_schedules if is_regular else [],
                        state=PtState.PENDING,
                        created_at=now
                    )
                    operations, records = BookingService._booking_operations(pt, week_time_ids, available, ledgers)
                    try:
                        store.execute_batch(trainer_id, operations)
                    except CosmosBatchOperationError as e:
                        if not PtStore.is_write_conflict(e):
                            raise
                        if attempt == Config.BOOKING_WRITE_ATTEMPTS:
                            raise ConflictError(
                                "The trainer's schedule changed while booking, please try again",
                                code="concurrent_update",
                                retryable=True
                            ) from e
                        log_event("Booking write lost a race, retrying", {
                            "trainer_id": trainer_id,
                            "attempt": attempt,
                            "error_index": e.error_index
                        })
                        continue

                    not_booked = taken if is_regular else checked.fail + taken
                    result = BookingService._result(pt.id, available, not_booked, checked.requested_count)
                    log_event("Booking created successfully", {
                        "pt_id": pt.id,
                        "member_id": member_id,
                        "trainer_id": trainer_id,
                        "booked": len(records),
                        "lost": len(taken)
                    })
                    log_metric("sessions_booked", len(records), {"trainer_id": trainer_id})
                    return result
        except SchedulingError as e:
            log_rejection("write_booking", e, {"member_id": member_id, "trainer_id": trainer_id})
            raise
        except Exception as e:
            log_exception(e, {
                "operation": "write_booking",
                "member_id": member_id,
                "trainer_id": trainer_id
            })
            raise

    @staticmethod
    def _result(pt_id: str, booked: List[Schedule], not_booked: List[Schedule], requested_count: int) -> BookingResult:
        is_complete = len(booked) >= requested_count
        if is_complete:
            message = f"All {len(booked)} sessions were booked."
        else:
            message = f"Only {len(booked)} of {requested_count} sessions could be booked."
        return BookingResult(
            pt_id=pt_id,
            booked=booked,
            not_booked=sorted(not_booked, key=lambda s: s.sort_key()),
            requested_count=requested_count,
            message=message,
            is_complete=is_complete
        )

    @staticmethod
    def cancel_pending_booking(store: PtStore, user: AuthUser, pt_id: str, now: datetime) -> CancelBookingResponse:
        """
        Withdraw a booking the trainer has not confirmed yet: the booking and
        its sessions are deleted and their slots released in one batch.
        """
        try:
            with start_span("cancel_pending_booking", attributes={"pt_id": pt_id, "member_id": user.id}):
                log_event("Cancel pending booking started", {"pt_id": pt_id, "member_id": user.id})

                item = store.get_pt(pt_id)
                if not item:
                    raise NotFoundError(f"Booking {pt_id} not found")
                pt = Pt(**item)
                if pt.member_id != user.id:
                    raise AuthorizationError("Only the member of this booking can cancel it")
                if pt.state != PtState.PENDING:
                    raise ConflictError(f"Only pending bookings can be cancelled, this one is {pt.state.value.lower()}")

                record_items = store.list_records_for_pt(pt.trainer_id, pt.id)
                records = [PtRecord(**record_item) for record_item in record_items]
                ledgers = store.get_slot_ledgers(pt.trainer_id, {record.date for record in records})
                ScheduleValidator.validate_batch_size(len(records), len(ledgers))

                operations = [PtStore.delete_op(pt.id, item.get("_etag"))]
                releases = {}
                for record in records:
                    operations.append(PtStore.delete_op(record.id))
                    schedule = Schedule(date=record.date, start_time=record.start_time, end_time=record.end_time)
                    releases.setdefault(record.date, {}).update(PtStore.ledger_claims(schedule, record.id))
                    if record.pending_request_id:
                        request_item = store.get_request_in_partition(pt.trainer_id, record.pending_request_id)
                        closing = request_item and ScheduleChangeService.closing_operation(
                            request_item, user.id, CANCELLED_WITH_BOOKING, now
                        )
                        if closing:
                            operations.append(closing)
                operations.extend(PtStore.ledger_operations(pt.trainer_id, ledgers, releases=releases))

                try:
                    store.execute_batch(pt.trainer_id, operations)
                except CosmosBatchOperationError as e:
                    if not PtStore.is_write_conflict(e):
                        raise
                    raise ConflictError(
                        "The booking changed while cancelling, please try again",
                        code="concurrent_update",
                        retryable=True
                    ) from e

                log_event("Pending booking cancelled", {
                    "pt_id": pt.id,
                    "member_id": user.id,
                    "released_sessions": len(records)
                })
                return CancelBookingResponse(pt_id=pt.id, released_sessions=len(records))
        except SchedulingError as e:
            log_rejection("cancel_pending_booking", e, {"pt_id": pt_id, "member_id": user.id})
            raise
        except Exception as e:
            log_exception(e, {"operation": "cancel_pending_booking", "pt_id": pt_id})
            raise

