from azure.cosmos import ContainerProxy
from azure.cosmos.exceptions import CosmosBatchOperationError
from datetime import date
from typing import Dict, Iterable, List, Optional
from ptscheduler.models.mod_pt import ACTIVE_PT_STATES
from ptscheduler.models.mod_schedule import Schedule, WeekSchedule
from ptscheduler.services.svc_timeslot import TimeSlotService

# Document types living in the "pts" container (partition key: /trainer_id)
PT_TYPE = "pt"
PT_RECORD_TYPE = "pt_record"
SLOT_LEDGER_TYPE = "slot_ledger"
SCHEDULE_CHANGE_TYPE = "schedule_change"

WRITE_CONFLICT_STATUS_CODES = (409, 412)

def schedule_id(schedule: Schedule) -> str:
    """Natural key of a schedule row; identical time ranges share one row"""
    return f"schedule_{schedule.date.isoformat()}_{schedule.start_time}_{schedule.end_time}"

def week_time_id(week: WeekSchedule) -> str:
    return f"week_{week.day}_{week.start_time}_{week.end_time}"

def ledger_id(trainer_id: str, day: date) -> str:
    return f"ledger_{trainer_id}_{day.isoformat()}"

class PtStore:
    """
    Cosmos DB access for the scheduling core.

    Bookings, sessions, change requests and slot ledgers of a trainer share
    one partition, so every multi-document write is a single transactional
    batch. Read methods return raw items (including _etag); callers build
    models from them.
    """

    def __init__(self, pts: ContainerProxy, schedules: ContainerProxy,
                 products: ContainerProxy, trainer_offs: ContainerProxy):
        self.pts = pts
        self.schedules = schedules
        self.products = products
        self.trainer_offs = trainer_offs

    def _first(self, container: ContainerProxy, query: str, parameters: list,
               partition_key: str = None) -> Optional[dict]:
        if partition_key is not None:
            items = list(container.query_items(
                query=query, parameters=parameters, partition_key=partition_key
            ))
        else:
            items = list(container.query_items(
                query=query, parameters=parameters, enable_cross_partition_query=True
            ))
        return items[0] if items else None

    # Reads

    def get_product(self, product_id: str) -> Optional[dict]:
        return self._first(
            self.products,
            "SELECT * FROM c WHERE c.id = @id",
            [{"name": "@id", "value": product_id}]
        )

    def get_pt(self, pt_id: str) -> Optional[dict]:
        return self._first(
            self.pts,
            "SELECT * FROM c WHERE c.type = @type AND c.id = @id",
            [{"name": "@type", "value": PT_TYPE}, {"name": "@id", "value": pt_id}]
        )

    def get_record(self, record_id: str) -> Optional[dict]:
        return self._first(
            self.pts,
            "SELECT * FROM c WHERE c.type = @type AND c.id = @id",
            [{"name": "@type", "value": PT_RECORD_TYPE}, {"name": "@id", "value": record_id}]
        )

    def get_request(self, request_id: str) -> Optional[dict]:
        return self._first(
            self.pts,
            "SELECT * FROM c WHERE c.type = @type AND c.id = @id",
            [{"name": "@type", "value": SCHEDULE_CHANGE_TYPE}, {"name": "@id", "value": request_id}]
        )

    def get_request_in_partition(self, trainer_id: str, request_id: str) -> Optional[dict]:
        return self._first(
            self.pts,
            "SELECT * FROM c WHERE c.type = @type AND c.id = @id",
            [{"name": "@type", "value": SCHEDULE_CHANGE_TYPE}, {"name": "@id", "value": request_id}],
            partition_key=trainer_id
        )

    def list_records_for_pt(self, trainer_id: str, pt_id: str) -> List[dict]:
        query = "SELECT * FROM c WHERE c.type = @type AND c.pt_id = @pt_id ORDER BY c.date ASC"
        return list(self.pts.query_items(
            query=query,
            parameters=[{"name": "@type", "value": PT_RECORD_TYPE}, {"name": "@pt_id", "value": pt_id}],
            partition_key=trainer_id
        ))

    def list_requests_for_user(self, user_id: str) -> List[dict]:
        """Change requests on sessions where the user is the member or the trainer"""
        query = ("SELECT * FROM c WHERE c.type = @type "
                 "AND (c.member_id = @user_id OR c.trainer_id = @user_id) "
                 "ORDER BY c.created_at DESC")
        return list(self.pts.query_items(
            query=query,
            parameters=[{"name": "@type", "value": SCHEDULE_CHANGE_TYPE}, {"name": "@user_id", "value": user_id}],
            enable_cross_partition_query=True
        ))

    def _active_pt_ids(self, field: str, value: str, partition_key: str = None) -> set:
        query = (f"SELECT c.id FROM c WHERE c.type = @type AND c.{field} = @value "
                 "AND ARRAY_CONTAINS(@states, c.state)")
        parameters = [
            {"name": "@type", "value": PT_TYPE},
            {"name": "@value", "value": value},
            {"name": "@states", "value": ACTIVE_PT_STATES}
        ]
        if partition_key is not None:
            items = self.pts.query_items(query=query, parameters=parameters, partition_key=partition_key)
        else:
            items = self.pts.query_items(query=query, parameters=parameters, enable_cross_partition_query=True)
        return {item["id"] for item in items}

    def _records_in_range(self, field: str, value: str, from_date: date, to_date: date,
                          partition_key: str = None) -> List[dict]:
        query = (f"SELECT * FROM c WHERE c.type = @type AND c.{field} = @value "
                 "AND c.date >= @from_date AND c.date < @to_date")
        parameters = [
            {"name": "@type", "value": PT_RECORD_TYPE},
            {"name": "@value", "value": value},
            {"name": "@from_date", "value": from_date.isoformat()},
            {"name": "@to_date", "value": to_date.isoformat()}
        ]
        if partition_key is not None:
            return list(self.pts.query_items(query=query, parameters=parameters, partition_key=partition_key))
        return list(self.pts.query_items(query=query, parameters=parameters, enable_cross_partition_query=True))

    def find_sessions_for_trainer_in_range(self, trainer_id: str, from_date: date, to_date: date) -> List[dict]:
        """Sessions of the trainer's active bookings dated in [from_date, to_date)"""
        records = self._records_in_range("trainer_id", trainer_id, from_date, to_date, partition_key=trainer_id)
        if not records:
            return []
        active = self._active_pt_ids("trainer_id", trainer_id, partition_key=trainer_id)
        return [record for record in records if record["pt_id"] in active]

    def find_sessions_for_member_in_range(self, member_id: str, from_date: date, to_date: date) -> List[dict]:
        """Sessions of the member's active bookings with any trainer"""
        records = self._records_in_range("member_id", member_id, from_date, to_date)
        if not records:
            return []
        active = self._active_pt_ids("member_id", member_id)
        return [record for record in records if record["pt_id"] in active]

    def find_trainer_off_days(self, trainer_id: str, from_date: date, to_date: date) -> List[dict]:
        """Dated offs inside the range plus every weekly repeating off"""
        query = ("SELECT * FROM c WHERE c.trainer_id = @trainer_id AND "
                 "((c.date >= @from_date AND c.date < @to_date) OR IS_NUMBER(c.week_day))")
        return list(self.trainer_offs.query_items(
            query=query,
            parameters=[
                {"name": "@trainer_id", "value": trainer_id},
                {"name": "@from_date", "value": from_date.isoformat()},
                {"name": "@to_date", "value": to_date.isoformat()}
            ],
            enable_cross_partition_query=True
        ))

    def get_slot_ledgers(self, trainer_id: str, days: Iterable[date]) -> Dict[date, dict]:
        """Ledger items of the given dates; dates with no claimed slot are absent"""
        by_id = {ledger_id(trainer_id, day): day for day in days}
        if not by_id:
            return {}
        items = self.pts.query_items(
            query="SELECT * FROM c WHERE c.type = @type AND ARRAY_CONTAINS(@ids, c.id)",
            parameters=[
                {"name": "@type", "value": SLOT_LEDGER_TYPE},
                {"name": "@ids", "value": list(by_id)}
            ],
            partition_key=trainer_id
        )
        return {by_id[item["id"]]: item for item in items}

    def find_stale_claims(self, trainer_id: str, record_ids: Iterable[str]) -> set:
        """
        Ledger holders that no longer hold trainer time: the session is gone
        or its booking left the active states (rejected, cancelled...).
        """
        ids = set(record_ids)
        if not ids:
            return set()
        records = self.pts.query_items(
            query="SELECT c.id, c.pt_id FROM c WHERE c.type = @type AND ARRAY_CONTAINS(@ids, c.id)",
            parameters=[
                {"name": "@type", "value": PT_RECORD_TYPE},
                {"name": "@ids", "value": sorted(ids)}
            ],
            partition_key=trainer_id
        )
        pt_by_record = {item["id"]: item["pt_id"] for item in records}
        active = self._active_pt_ids("trainer_id", trainer_id, partition_key=trainer_id)
        return {record_id for record_id in ids if pt_by_record.get(record_id) not in active}

    # Writes

    def upsert_schedule(self, schedule: Schedule) -> str:
        """Find-or-create by natural key; concurrent callers get the same id"""
        item_id = schedule_id(schedule)
        self.schedules.upsert_item(body={
            "id": item_id,
            "date": schedule.date.isoformat(),
            "start_time": schedule.start_time,
            "end_time": schedule.end_time
        })
        return item_id

    def upsert_week_time(self, week: WeekSchedule) -> str:
        item_id = week_time_id(week)
        self.schedules.upsert_item(body={
            "id": item_id,
            "day": week.day,
            "start_time": week.start_time,
            "end_time": week.end_time
        })
        return item_id

    def execute_batch(self, trainer_id: str, operations: list) -> list:
        """
        Run operations atomically in the trainer's partition. Raises
        CosmosBatchOperationError when any operation fails; nothing is applied.
        """
        return self.pts.execute_item_batch(batch_operations=operations, partition_key=trainer_id)

    # Batch operation builders

    @staticmethod
    def create_op(body: dict) -> tuple:
        return ("create", (body,))

    @staticmethod
    def replace_op(item: dict, body: dict) -> tuple:
        """Replace guarded by the etag the item was read with"""
        return ("replace", (item["id"], body), {"if_match_etag": item["_etag"]})

    @staticmethod
    def delete_op(item_id: str, etag: str = None) -> tuple:
        if etag:
            return ("delete", (item_id,), {"if_match_etag": etag})
        return ("delete", (item_id,))

    @staticmethod
    def ledger_op(trainer_id: str, day: date, ledger: Optional[dict], slots: Dict[str, str]) -> tuple:
        """
        Write the full slot map of one ledger. A missing ledger is created,
        so two writers racing on a fresh date collide on the id.
        """
        body = {
            "id": ledger_id(trainer_id, day),
            "type": SLOT_LEDGER_TYPE,
            "trainer_id": trainer_id,
            "date": day.isoformat(),
            "slots": slots
        }
        if ledger is None:
            return PtStore.create_op(body)
        return PtStore.replace_op(ledger, body)

    @staticmethod
    def ledger_claims(schedule: Schedule, record_id: str) -> Dict[str, str]:
        """Ledger entries ({slot: record id}) for the slots a session spans"""
        return {str(slot): record_id for slot in TimeSlotService.span_slots(schedule.start_time, schedule.end_time)}

    @staticmethod
    def ledger_operations(trainer_id: str, ledgers: Dict[date, dict],
                          claims: Dict[date, Dict[str, str]] = None,
                          releases: Dict[date, Dict[str, str]] = None) -> list:
        """
        One ledger write per touched date. A released slot is only dropped
        while it still points at the releasing session.
        """
        claims = claims or {}
        releases = releases or {}
        operations = []
        for day in sorted(set(claims) | set(releases)):
            ledger = ledgers.get(day)
            if ledger is None and day not in claims:
                continue
            slots = dict(ledger["slots"]) if ledger else {}
            for slot, record_id in releases.get(day, {}).items():
                if slots.get(slot) == record_id:
                    del slots[slot]
            slots.update(claims.get(day, {}))
            operations.append(PtStore.ledger_op(trainer_id, day, ledger, slots))
        return operations

    @staticmethod
    def ledger_holders(ledgers: Dict[date, dict]) -> set:
        """Record ids holding at least one slot in the given ledgers"""
        return {record_id for ledger in ledgers.values() for record_id in ledger.get("slots", {}).values()}

    @staticmethod
    def claimed_by_others(ledger: Optional[dict], schedule: Schedule, record_id: str = None,
                          stale_ids: Iterable[str] = ()) -> bool:
        """
        True when any slot of schedule is held in the ledger by another
        session. Holders in stale_ids are ignored; claiming over them
        overwrites their entries.
        """
        if not ledger:
            return False
        slots = ledger.get("slots", {})
        stale_ids = set(stale_ids)
        for slot in PtStore.ledger_claims(schedule, record_id):
            holder = slots.get(slot)
            if holder is not None and holder != record_id and holder not in stale_ids:
                return True
        return False

    @staticmethod
    def is_write_conflict(error: CosmosBatchOperationError) -> bool:
        """
        True when the batch failed because another writer got there first:
        a create hit an existing id (409) or an etag no longer matched (412).
        """
        responses = error.operation_responses or []
        status_code = error.status_code
        if error.error_index is not None and error.error_index < len(responses):
            status_code = responses[error.error_index].get("statusCode", status_code)
        return status_code in WRITE_CONFLICT_STATUS_CODES
