"""Metrics API routes."""

from flask import Blueprint, current_app, jsonify

metrics_bp = Blueprint("metrics", __name__)


@metrics_bp.route("/metrics", methods=["GET"])
def get_metrics():
    """Return conversation telemetry for active sessions."""
    config = current_app.config["agent_config"]
    if not config.telemetry.enabled:
        return jsonify({"enabled": False, "sessions": []})

    sessions = current_app.config["sessions"]
    result = []
    for sid, session in sessions.items():
        summary = session.context.telemetry.summary_dict()
        result.append({
            "session_id": sid,
            "rounds": summary["total_rounds"],
            "tool_call_count": len(summary["tool_calls"]),
            "llm_call_count": len(summary["llm_calls"]),
            "metrics": summary,
        })

    return jsonify({
        "enabled": True,
        "log_dir": config.telemetry.log_dir,
        "sessions": result,
    })
