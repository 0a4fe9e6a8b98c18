"""Sprint listing API endpoints backed by the issue cache."""

from flask import Blueprint, current_app, request, jsonify

from services.issue_cache import IssueCache

bp = Blueprint("sprints", __name__, url_prefix="/api/sprints")


@bp.route("/<path:sprint_name>/issues", methods=["GET"])
def list_sprint_issues(sprint_name):
    """List cached issues currently in a sprint.

    Query params:
        - project: Optional project key filter
    """
    config = current_app.config["TRACKER_CONFIG"]
    cache = IssueCache(config.cache_dir, config)
    project = request.args.get("project") or None

    keys = cache.issues_in_sprint(sprint_name, project)
    return jsonify({
        "data": {
            "sprint": sprint_name,
            "issues": keys,
            "total": len(keys)
        }
    })
