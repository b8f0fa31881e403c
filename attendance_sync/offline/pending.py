"""
Pending-items view: what the user sees in the "not yet synced" panel.

Duplicate submissions (same class, date and session type queued twice, e.g.
from two offline sessions) stay separate rows in the queue. They are collapsed
here for display, and deleting the collapsed item removes every underlying row.
"""
from typing import Iterable, List

from attendance_sync.datetime_utils import ms_to_iso
from attendance_sync.logging_config import get_logger
from attendance_sync.offline.projection_cache import KIND_STUDENTS
from attendance_sync.submission import normalize_attendance_type

logger = get_logger(__name__)


def _student_names(cache, class_id):
    students = cache.get(class_id, KIND_STUDENTS) or []
    names = {}
    for student in students:
        if not isinstance(student, dict) or student.get("id") is None:
            continue
        # Server rows have used several spellings over time
        saint_name = student.get("baptismalName") or student.get("saintName") or student.get("saint_name")
        full_name = student.get("fullName") or student.get("full_name") or ""
        names[student["id"]] = f"{saint_name} {full_name}" if saint_name else full_name
    return names


def pending_details(store, cache, failed_items) -> List[dict]:
    """Pending queue rows enriched with class/student names and failure flag."""
    class_names = cache.class_names()
    details = []
    for item in store.list_pending():
        data = item.to_dict()
        class_id = data.get("classId")
        student_names = _student_names(cache, class_id) if class_id is not None else {}

        data["className"] = class_names.get(class_id) or f"Class ID: {class_id}"
        data["attendanceType"] = normalize_attendance_type(data.get("attendanceType"))
        data["failed"] = item.id in failed_items
        data["records"] = [
            {
                **record,
                "studentName": student_names.get(record.get("studentId")) or f"Student #{record.get('studentId')}",
            }
            for record in data.get("records") or []
        ]
        details.append(data)
    return details


def group_pending(details: Iterable[dict]) -> List[dict]:
    """Collapse entries sharing classId + attendanceDate + attendanceType."""
    grouped = {}
    for item in details:
        key = (item.get("classId"), item.get("attendanceDate"), item.get("attendanceType"))
        if key not in grouped:
            grouped[key] = {**item, "duplicateIds": [item["id"]], "isDuplicate": False}
            continue

        group = grouped[key]
        group["duplicateIds"].append(item["id"])
        group["isDuplicate"] = True
        group["failed"] = group.get("failed", False) or item.get("failed", False)
        if item["timestamp"] < group["timestamp"]:
            group["timestamp"] = item["timestamp"]
            group["createdAt"] = ms_to_iso(item["timestamp"])

    return list(grouped.values())


def find_group(groups: Iterable[dict], item_id: int):
    for group in groups:
        if item_id in group["duplicateIds"]:
            return group
    return None


def delete_pending_group(store, failed_items, ids: Iterable[int]) -> int:
    """User cancel: delete every id of a grouped item and forget its failures."""
    ids = list(ids)
    deleted = sum(1 for item_id in ids if store.delete(item_id))
    failed_items.discard_many(ids)
    logger.info("Pending group deleted", ids=ids, deleted=deleted)
    return deleted
