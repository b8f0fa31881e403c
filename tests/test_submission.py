"""
Tests for attendance submission validation and the submission model.
"""
from attendance_sync.submission import (
    AttendanceSubmission,
    get_allowed_attendance_types,
    normalize_attendance_type,
    validate_attendance,
    validate_submission_payload,
)

SUNDAY = "2025-01-05"
THURSDAY = "2025-01-02"
MONDAY = "2025-01-06"


class TestValidateAttendance:

    def test_sunday_allows_mass_and_class(self):
        assert validate_attendance(SUNDAY, "Lễ Chúa Nhật") == (True, None)
        assert validate_attendance(SUNDAY, "Học Giáo Lý") == (True, None)

    def test_thursday_allows_weekday_mass_only(self):
        assert validate_attendance(THURSDAY, "Lễ Thứ 5") == (True, None)
        is_valid, error = validate_attendance(THURSDAY, "Học Giáo Lý")
        assert is_valid is False
        assert "Thursday" in error

    def test_other_days_rejected(self):
        is_valid, error = validate_attendance(MONDAY, "Lễ Chúa Nhật")
        assert is_valid is False
        assert "Monday" in error

    def test_legacy_type_names_accepted(self):
        assert validate_attendance(THURSDAY, "Le Thu 5") == (True, None)

    def test_missing_values(self):
        assert validate_attendance("", "Thánh Lễ")[0] is False
        assert validate_attendance(SUNDAY, None)[0] is False
        assert validate_attendance("05/01/2025", "Thánh Lễ")[0] is False

    def test_allowed_types(self):
        assert get_allowed_attendance_types(MONDAY) == ()
        assert get_allowed_attendance_types("garbage") == ()


class TestValidateSubmissionPayload:

    def _payload(self, **overrides):
        payload = {
            "classId": 1,
            "attendanceDate": SUNDAY,
            "attendanceType": "Học Giáo Lý",
            "records": [{"studentId": 10, "isPresent": True}],
        }
        payload.update(overrides)
        return payload

    def test_valid(self):
        assert validate_submission_payload(self._payload()) == (True, None)

    def test_not_an_object(self):
        assert validate_submission_payload(None)[0] is False
        assert validate_submission_payload([1])[0] is False

    def test_structural_errors(self):
        assert validate_submission_payload(self._payload(classId="1")) == (False, "Invalid class ID")
        assert validate_submission_payload(self._payload(classId=True)) == (False, "Invalid class ID")
        assert validate_submission_payload(self._payload(attendanceDate="x")) == (False, "Invalid attendance date")
        assert validate_submission_payload(self._payload(attendanceType="Picnic")) == (False, "Invalid attendance type")
        assert validate_submission_payload(self._payload(records={})) == (False, "Invalid attendance records")
        assert validate_submission_payload(
            self._payload(records=[{"studentId": "10", "isPresent": True}])
        ) == (False, "Invalid student ID")
        assert validate_submission_payload(
            self._payload(records=[{"studentId": 10, "isPresent": 1}])
        ) == (False, "Invalid presence flag")


class TestAttendanceSubmission:

    def test_from_payload_normalizes_type(self):
        submission = AttendanceSubmission.from_payload({
            "classId": 3,
            "attendanceDate": SUNDAY,
            "attendanceType": "Le Chua Nhat",
            "records": [
                {"studentId": 1, "isPresent": True},
                {"studentId": 2, "isPresent": False},
            ],
        })

        assert submission.attendance_type == "Lễ Chúa Nhật"
        assert submission.group_key == (3, SUNDAY, "Lễ Chúa Nhật")
        assert submission.present_count == 1
        assert submission.to_payload()["attendanceMethod"] == "manual"

    def test_normalize_leaves_unknown_values(self):
        assert normalize_attendance_type("Thánh Lễ") == "Thánh Lễ"
        assert normalize_attendance_type(None) is None
