"""
Local HTTP API used by the attendance UI on this device.
"""
from flask import jsonify, request

from attendance_sync.api import api_bp
from attendance_sync.exceptions import ApplicationError, StorageError, SyncInProgressError
from attendance_sync.logging_config import get_logger
from attendance_sync.offline.pending import delete_pending_group, find_group, group_pending, pending_details
from attendance_sync.services import get_services
from attendance_sync.services.class_cache_service import refresh_class_cache
from attendance_sync.submission import AttendanceSubmission, validate_attendance, validate_submission_payload

logger = get_logger(__name__)


@api_bp.route("/health", methods=["GET", "HEAD"])
def health():
    return jsonify({"status": "ok"}), 200


# -------------------------
# Attendance
# -------------------------
@api_bp.route("/attendance", methods=["POST"])
def save_attendance():
    """
    Save attendance through the submission gateway.

    Returns 200 with the server response when accepted online, or 202 with
    {"offline": true, "queuedId": ...} when it was queued for later sync.
    """
    data = request.get_json(silent=True)

    is_valid, error = validate_submission_payload(data)
    if not is_valid:
        return jsonify({"success": False, "error": error}), 400
    is_valid, error = validate_attendance(data["attendanceDate"], data["attendanceType"])
    if not is_valid:
        return jsonify({"success": False, "error": error}), 400

    submission = AttendanceSubmission.from_payload(data)
    services = get_services()
    try:
        result = services.gateway.save(submission)
    except ApplicationError as e:
        logger.info("Attendance rejected by server", status_code=e.status_code, error=e.message)
        return jsonify({"success": False, "error": e.message}), e.status_code or 400
    except StorageError as e:
        logger.error("Could not queue attendance locally", error=str(e))
        return jsonify({
            "success": False,
            "error": "Attendance could not be saved on this device",
            "detail": str(e),
        }), 507

    if isinstance(result, dict) and result.get("offline"):
        return jsonify(result), 202
    return jsonify(result), 200


# -------------------------
# Sync
# -------------------------
@api_bp.route("/sync/status", methods=["GET"])
def sync_status():
    services = get_services()
    status = services.orchestrator.get_sync_status()
    status.update(services.queue_store.stats())
    return jsonify(status), 200


@api_bp.route("/sync/now", methods=["POST"])
def sync_now():
    services = get_services()
    try:
        result = services.orchestrator.force_sync_now()
    except Exception as e:
        logger.error("Error in /sync/now", error=str(e), exc_info=True)
        return jsonify({"error": str(e)}), 500
    return jsonify(result), 200


@api_bp.route("/sync/retry-failed", methods=["POST"])
def retry_failed():
    """Forget every rejected submission and run a sync straight away."""
    services = get_services()
    cleared = services.orchestrator.clear_failed_items()
    try:
        result = services.orchestrator.force_sync_now()
    except Exception as e:
        logger.error("Error in /sync/retry-failed", error=str(e), exc_info=True)
        return jsonify({"cleared": cleared, "error": str(e)}), 500
    return jsonify({"cleared": cleared, "result": result}), 200


@api_bp.route("/sync/auto", methods=["PUT"])
def set_auto_sync():
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("enabled"), bool):
        return jsonify({"error": "'enabled' must be a boolean"}), 400
    services = get_services()
    services.orchestrator.set_auto_sync(data["enabled"])
    return jsonify({"autoSyncEnabled": services.orchestrator.auto_sync_enabled}), 200


@api_bp.route("/sync/pending", methods=["GET"])
def list_pending():
    services = get_services()
    details = pending_details(services.queue_store, services.cache, services.failed_items)
    groups = group_pending(details)
    return jsonify({
        "pending": groups,
        "total_count": len(details),
        "group_count": len(groups),
    }), 200


@api_bp.route("/sync/pending/<int:item_id>", methods=["DELETE"])
def delete_pending(item_id):
    """Delete a pending item together with every duplicate grouped with it."""
    services = get_services()
    details = pending_details(services.queue_store, services.cache, services.failed_items)
    group = find_group(group_pending(details), item_id)
    if group is None:
        return jsonify({"error": f"Pending item {item_id} not found"}), 404

    deleted = delete_pending_group(services.queue_store, services.failed_items, group["duplicateIds"])
    return jsonify({"deleted": deleted, "ids": group["duplicateIds"]}), 200


@api_bp.route("/sync/logs", methods=["GET"])
def sync_logs():
    kind = request.args.get("type", "all")
    event_logger = get_services().event_logger
    if kind == "all":
        logs = event_logger.all_logs()
    elif kind in ("error", "success"):
        logs = event_logger.local_logs(kind)
    else:
        return jsonify({"error": f"Unknown log type: {kind}"}), 400
    return jsonify({"logs": logs, "total_count": len(logs)}), 200


@api_bp.route("/sync/logs", methods=["DELETE"])
def clear_sync_logs():
    kind = request.args.get("type", "all")
    if kind not in ("all", "error", "success"):
        return jsonify({"error": f"Unknown log type: {kind}"}), 400
    removed = get_services().event_logger.clear_local_logs(kind)
    return jsonify({"removed": removed}), 200


@api_bp.route("/sync/stats", methods=["GET"])
def sync_stats():
    return jsonify(get_services().event_logger.stats()), 200


# -------------------------
# Network
# -------------------------
@api_bp.route("/network", methods=["GET"])
def network_status():
    return jsonify({"online": get_services().network_signal.get_status()}), 200


@api_bp.route("/network", methods=["PUT"])
def report_network_event():
    """Browser online/offline events forwarded by the UI."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("online"), bool):
        return jsonify({"error": "'online' must be a boolean"}), 400
    signal = get_services().network_signal
    changed = signal.set_status(data["online"])
    return jsonify({"online": signal.get_status(), "changed": changed}), 200


@api_bp.route("/network/check", methods=["GET"])
def check_network():
    reachable = get_services().network_signal.check_connectivity()
    return jsonify({"reachable": reachable}), 200


# -------------------------
# Cache
# -------------------------
@api_bp.route("/cache/refresh", methods=["POST"])
def refresh_cache():
    force = request.args.get("force", "").lower() in ("1", "true", "yes")
    services = get_services()
    result = refresh_class_cache(services.api, services.cache, services.network_signal, force=force)
    return jsonify(result), 200


# -------------------------
# Offline data
# -------------------------
@api_bp.route("/offline", methods=["DELETE"])
def clear_offline_data():
    """Wipe every queued submission, the failed set and the cached class data."""
    try:
        removed = get_services().orchestrator.clear_offline_data()
    except SyncInProgressError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"removed": removed}), 200
