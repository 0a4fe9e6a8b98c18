"""Sprint tracker report API endpoints."""

import io

from flask import Blueprint, Response, current_app, request, jsonify

from services.errors import InvalidConfiguration, SinkWriteFailure
from services.issue_cache import IssueCache
from services.report import report_header, snapshot_rows, write_report
from services.sprint_tracker import SprintTrackerService

bp = Blueprint("tracker", __name__, url_prefix="/api/tracker")


def get_tracker_service():
    """Build a tracker service over the configured issue cache."""
    config = current_app.config["TRACKER_CONFIG"]
    return SprintTrackerService(IssueCache(config.cache_dir, config), config)


def get_report_params():
    """Get report options from query params.

    Query params:
        - project: Optional project key (e.g., "RHOAIENG")
        - sprint: Optional sprint name, restricts output to that sprint
        - interval: daily (default), hourly or minutely

    Returns:
        Tuple of (project, sprint, interval)
    """
    project = request.args.get("project") or None
    sprint = request.args.get("sprint") or None
    interval = request.args.get("interval", "daily")
    return project, sprint, interval


@bp.route("/report", methods=["GET"])
def get_report():
    """Get per-sprint issue counts, story points and statuses over time.

    Query params:
        - project, sprint, interval: see get_report_params
        - format: json (default) or csv

    Returns:
        - One row per (timestamp, sprint) bucket
        - Tracked status columns
    """
    project, sprint, interval = get_report_params()
    output_format = request.args.get("format", "json")

    if output_format not in ("json", "csv"):
        return jsonify({"error": f"Unsupported format: {output_format}"}), 400

    service = get_tracker_service()
    statuses = service.config.tracked_statuses

    try:
        snapshots = service.get_snapshots(project, sprint, interval)
    except InvalidConfiguration as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        current_app.logger.exception("Tracker report failed")
        return jsonify({"error": str(e)}), 500

    if output_format == "csv":
        buffer = io.StringIO()
        try:
            write_report(snapshots, statuses, buffer)
        except SinkWriteFailure as e:
            return jsonify({"error": str(e)}), 500
        return Response(buffer.getvalue(), mimetype="text/csv")

    return jsonify({
        "data": {
            "columns": report_header(statuses),
            "interval": interval,
            "rows": snapshot_rows(snapshots, statuses)
        }
    })
