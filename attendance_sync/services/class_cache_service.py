from attendance_sync.exceptions import SyncError
from attendance_sync.logging_config import get_logger
from attendance_sync.offline.projection_cache import DEFAULT_MAX_AGE_MS, KIND_STUDENTS, ProjectionCache

logger = get_logger(__name__)


def refresh_class_cache(api, cache, network_signal, force=False, max_age_ms=DEFAULT_MAX_AGE_MS):
    """
    Pull the class list and rosters into the local projection cache so the
    pending view can show names while offline.

    Rosters cached less than `max_age_ms` ago are kept unless `force` is set.

    Returns:
        dict: counts of cached classes, fetched and still-fresh rosters, or {"offline": True}
    """
    if not network_signal.get_status():
        return {"offline": True}

    try:
        classes = api.get_classes()
    except SyncError as e:
        logger.warning("Could not refresh class cache", error=str(e))
        return {"classes": 0, "rosters": 0, "fresh": 0, "error": str(e)}

    cache.cache_classes(classes)

    rosters = 0
    fresh = 0
    for class_item in classes:
        class_id = int(class_item["id"])
        entry = cache.get_entry(class_id, KIND_STUDENTS)
        if not force and entry and not ProjectionCache.is_stale(entry["lastUpdated"], max_age_ms):
            fresh += 1
            continue
        try:
            cache.put(class_id, KIND_STUDENTS, api.get_students(class_id))
            rosters += 1
        except SyncError as e:
            logger.warning("Could not refresh roster", class_id=class_id, error=str(e))

    logger.info("Class cache refreshed", classes=len(classes), rosters=rosters, fresh=fresh)
    return {"classes": len(classes), "rosters": rosters, "fresh": fresh}
