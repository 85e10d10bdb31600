"""Tools API route - list the tools bots may call."""

from flask import Blueprint, jsonify, current_app

tools_bp = Blueprint("tools", __name__)


@tools_bp.route("/tools", methods=["GET"])
def list_tools():
    """List every registered tool definition."""
    registry = current_app.config["tool_registry"]
    return jsonify({
        "tools": [definition.to_dict() for definition in registry.list_definitions()],
    })
