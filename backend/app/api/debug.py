"""Debug API endpoints for troubleshooting."""

from flask import Blueprint, current_app, request, jsonify

from services.errors import MalformedRecord, NotFoundInCache
from services.issue_cache import IssueCache
from services.sprint_tracker import SprintTrackerService

bp = Blueprint("debug", __name__, url_prefix="/api/debug")


@bp.route("/issues/<issue_key>/timeline", methods=["GET"])
def get_issue_timeline(issue_key):
    """Show which changelog was used for an issue and the windows it produced.

    Query params:
        - sprint: Optional sprint name filter
    """
    config = current_app.config["TRACKER_CONFIG"]
    service = SprintTrackerService(IssueCache(config.cache_dir, config), config)

    try:
        timeline = service.issue_timeline(issue_key, request.args.get("sprint") or None)
    except NotFoundInCache as e:
        return jsonify({"error": str(e)}), 404
    except MalformedRecord as e:
        return jsonify({"error": str(e)}), 422

    return jsonify({"data": timeline})
