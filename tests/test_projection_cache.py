"""
Tests for the per-class projection cache.
"""
import pytest

from attendance_sync.datetime_utils import MS_PER_HOUR, now_ms
from attendance_sync.offline.projection_cache import (
    KIND_CLASS,
    KIND_EXCEL,
    KIND_HISTORY,
    KIND_STUDENTS,
    ProjectionCache,
)
from attendance_sync.services.class_cache_service import refresh_class_cache
from attendance_sync.network.signal import NetworkSignal
from attendance_sync.exceptions import NetworkError


class TestProjectionCache:

    def test_put_get_roundtrip_and_overwrite(self, app):
        cache = ProjectionCache()
        cache.put(1, KIND_STUDENTS, [{"id": 1}])
        cache.put(1, KIND_STUDENTS, [{"id": 2}])

        assert cache.get(1, KIND_STUDENTS) == [{"id": 2}]
        assert cache.get_entry(1, KIND_STUDENTS)["lastUpdated"] is not None

    def test_unknown_kind_rejected(self, app):
        with pytest.raises(ValueError):
            ProjectionCache().put(1, "grades", {})

    def test_invalidate_drops_only_attendance_derived(self, app):
        cache = ProjectionCache()
        cache.put(1, KIND_CLASS, {"id": 1})
        cache.put(1, KIND_STUDENTS, [])
        cache.put(1, KIND_HISTORY, [])
        cache.put(1, KIND_EXCEL, {})
        cache.put(2, KIND_HISTORY, [])

        assert cache.invalidate(1) == 2
        assert cache.get(1, KIND_CLASS) == {"id": 1}
        assert cache.get(1, KIND_STUDENTS) == []
        assert cache.get_entry(1, KIND_HISTORY) is None
        assert cache.get(2, KIND_HISTORY) == []

    def test_excel_entries_capped(self, app):
        cache = ProjectionCache(max_excel_classes=2)
        for class_id in (1, 2, 3):
            cache.put(class_id, KIND_EXCEL, {"class": class_id})

        assert len(cache.get_all(KIND_EXCEL)) == 2
        assert cache.get(3, KIND_EXCEL) == {"class": 3}

    def test_is_stale(self):
        assert ProjectionCache.is_stale(None) is True
        assert ProjectionCache.is_stale(now_ms()) is False
        assert ProjectionCache.is_stale(now_ms() - 2 * MS_PER_HOUR) is True


class TestRefreshClassCache:

    def test_caches_classes_and_rosters(self, app, mock_api):
        mock_api.get_classes.return_value = [{"id": 1, "name": "Ấu Nhi 1"}, {"id": 2, "name": "Ấu Nhi 2"}]
        mock_api.get_students.side_effect = [[{"id": 10}], NetworkError("timeout")]
        cache = ProjectionCache()

        result = refresh_class_cache(mock_api, cache, NetworkSignal(True))

        assert result == {"classes": 2, "rosters": 1, "fresh": 0}
        assert cache.class_names() == {1: "Ấu Nhi 1", 2: "Ấu Nhi 2"}
        assert cache.get(1, KIND_STUDENTS) == [{"id": 10}]

    def test_fresh_rosters_are_not_refetched(self, app, mock_api):
        mock_api.get_classes.return_value = [{"id": 1, "name": "Ấu Nhi 1"}, {"id": 2, "name": "Ấu Nhi 2"}]
        cache = ProjectionCache()
        cache.put(1, KIND_STUDENTS, [{"id": 10}])

        result = refresh_class_cache(mock_api, cache, NetworkSignal(True))

        assert result == {"classes": 2, "rosters": 1, "fresh": 1}
        mock_api.get_students.assert_called_once_with(2)

    def test_stale_or_forced_rosters_are_refetched(self, app, mock_api):
        mock_api.get_classes.return_value = [{"id": 1, "name": "Ấu Nhi 1"}]
        mock_api.get_students.return_value = [{"id": 11}]
        cache = ProjectionCache()
        cache.put(1, KIND_STUDENTS, [{"id": 10}])

        assert refresh_class_cache(mock_api, cache, NetworkSignal(True), force=True)["rosters"] == 1
        assert refresh_class_cache(mock_api, cache, NetworkSignal(True), max_age_ms=-1)["rosters"] == 1
        assert cache.get(1, KIND_STUDENTS) == [{"id": 11}]

    def test_clear_removes_every_projection(self, app):
        cache = ProjectionCache()
        cache.put(1, KIND_CLASS, {"id": 1})
        cache.put(1, KIND_HISTORY, [])

        assert cache.clear() == 2
        assert cache.get_all(KIND_CLASS) == []

    def test_offline_does_nothing(self, app, mock_api):
        assert refresh_class_cache(mock_api, ProjectionCache(), NetworkSignal(False)) == {"offline": True}
        mock_api.get_classes.assert_not_called()
