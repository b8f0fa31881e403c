"""
Attendance submission model and the local validation rules applied before a
submission is accepted (online or queued).
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

ATTENDANCE_TYPES = (
    "Học Giáo Lý",
    "Thánh Lễ",
    "Lễ Thứ 5",
    "Lễ Chúa Nhật",
)

# ASCII spellings produced by older clients and spreadsheet headers
LEGACY_TYPE_NAMES = {
    "Le Thu 5": "Lễ Thứ 5",
    "Hoc Giao Ly": "Học Giáo Lý",
    "Le Chua Nhat": "Lễ Chúa Nhật",
    "Thanh Le": "Thánh Lễ",
}

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# date.weekday(): Monday == 0 ... Sunday == 6
ALLOWED_TYPES_BY_WEEKDAY = {
    3: ("Lễ Thứ 5",),
    6: ("Lễ Chúa Nhật", "Học Giáo Lý"),
}


def normalize_attendance_type(attendance_type):
    return LEGACY_TYPE_NAMES.get(attendance_type, attendance_type)


def _parse_date(date_str) -> Optional[date]:
    try:
        return date.fromisoformat(str(date_str))
    except (TypeError, ValueError):
        return None


def get_allowed_attendance_types(date_str) -> Tuple[str, ...]:
    day = _parse_date(date_str)
    if day is None:
        return ()
    return ALLOWED_TYPES_BY_WEEKDAY.get(day.weekday(), ())


def validate_attendance(date_str, attendance_type):
    """
    Check that a session type may be recorded on the given date.

    Only Thursdays (weekday Mass) and Sundays (Mass or catechism class) take
    attendance.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not date_str:
        return False, "Attendance date is required"
    if not attendance_type:
        return False, "Attendance type is required"

    day = _parse_date(date_str)
    if day is None:
        return False, f"Invalid attendance date: {date_str}"

    day_name = DAY_NAMES[day.weekday()]
    allowed = get_allowed_attendance_types(date_str)
    if not allowed:
        return False, (
            f"Attendance cannot be taken on {day_name}. "
            "Allowed: Thursday (Lễ Thứ 5), Sunday (Lễ Chúa Nhật or Học Giáo Lý)"
        )

    attendance_type = normalize_attendance_type(attendance_type)
    if attendance_type not in allowed:
        return False, f'"{attendance_type}" is not allowed on {day_name}; choose {" or ".join(allowed)}'

    return True, None


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def validate_submission_payload(data):
    """
    Structural validation mirroring the server's request validators.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not _is_int(data.get("classId")):
        return False, "Invalid class ID"
    if _parse_date(data.get("attendanceDate")) is None:
        return False, "Invalid attendance date"
    if normalize_attendance_type(data.get("attendanceType")) not in ATTENDANCE_TYPES:
        return False, "Invalid attendance type"

    records = data.get("records")
    if not isinstance(records, list):
        return False, "Invalid attendance records"
    for record in records:
        if not isinstance(record, dict) or not _is_int(record.get("studentId")):
            return False, "Invalid student ID"
        if not isinstance(record.get("isPresent"), bool):
            return False, "Invalid presence flag"

    return True, None


@dataclass
class AttendanceRecord:
    student_id: int
    is_present: bool

    def to_payload(self):
        return {"studentId": self.student_id, "isPresent": self.is_present}


@dataclass
class AttendanceSubmission:
    """One attendance session for a class: who was present on a date/type."""
    class_id: int
    attendance_date: str
    attendance_type: str
    records: List[AttendanceRecord] = field(default_factory=list)
    attendance_method: str = "manual"

    def __post_init__(self):
        self.attendance_type = normalize_attendance_type(self.attendance_type)

    @property
    def group_key(self):
        return (self.class_id, self.attendance_date, self.attendance_type)

    @property
    def present_count(self):
        return sum(1 for r in self.records if r.is_present)

    def to_payload(self):
        return {
            "classId": self.class_id,
            "attendanceDate": self.attendance_date,
            "attendanceType": self.attendance_type,
            "records": [r.to_payload() for r in self.records],
            "attendanceMethod": self.attendance_method,
        }

    @classmethod
    def from_payload(cls, data):
        return cls(
            class_id=data["classId"],
            attendance_date=data["attendanceDate"],
            attendance_type=data["attendanceType"],
            records=[
                AttendanceRecord(student_id=r["studentId"], is_present=r["isPresent"])
                for r in data.get("records") or []
            ],
            attendance_method=data.get("attendanceMethod") or "manual",
        )
