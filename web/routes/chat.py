"""Chat API routes - send messages, stream responses via SSE."""

import asyncio
import json
import queue
import uuid
from flask import Blueprint, request, jsonify, Response, current_app

from web.app import SessionState

chat_bp = Blueprint("chat", __name__)


@chat_bp.route("/chat/send", methods=["POST"])
def send_message():
    """Send a user message and start a bot turn."""
    data = request.get_json(silent=True) or {}
    message = (data.get("message") or "").strip()
    session_id = data.get("session_id")
    bot_name = data.get("bot")

    if not message:
        return jsonify({"error": "No message provided"}), 400

    config = current_app.config["agent_config"]
    sessions = current_app.config["sessions"]

    # Get or create session
    if session_id and session_id in sessions:
        session = sessions[session_id]
        is_new = False
    else:
        session = SessionState(
            config,
            session_id=session_id or uuid.uuid4().hex[:12],
            tool_registry=current_app.config["tool_registry"],
            client=current_app.config["chat_client"],
        )
        is_new = True

    if session.is_running:
        return jsonify({"error": "Bot is already processing"}), 409

    bot = session.context.get_bot(bot_name) if bot_name else session.default_bot()
    if bot is None:
        error = f"Unknown bot '{bot_name}'" if bot_name else "No bot is a member of the web social context"
        return jsonify({"error": error}), 404

    if is_new:
        ok, error = _preflight(session)
        if not ok:
            return jsonify({"error": error}), 503
        sessions[session.id] = session

    session.send_message(message, bot)

    return jsonify({"session_id": session.id, "status": "processing"})


@chat_bp.route("/chat/stream/<session_id>")
def stream_response(session_id):
    """SSE endpoint - streams notifier events in real time."""
    sessions = current_app.config["sessions"]
    session = sessions.get(session_id)

    if session is None:
        return jsonify({"error": "Session not found"}), 404

    def generate():
        while True:
            try:
                event = session.stream_queue.get(timeout=30)
                yield f"data: {json.dumps(event)}\n\n"
                if event.get("type") in ("done", "error"):
                    break
            except queue.Empty:
                # Timeout - send keepalive
                yield f"data: {json.dumps({'type': 'keepalive'})}\n\n"
                if not session.is_running:
                    break

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@chat_bp.route("/chat/history/<session_id>")
def get_history(session_id):
    """Get the chat history for a session."""
    sessions = current_app.config["sessions"]
    session = sessions.get(session_id)

    if session is None:
        return jsonify({"error": "Session not found"}), 404

    return jsonify({
        "history": [
            {"sender": m.sender, "message": m.message}
            for m in session.chat_history
        ],
        "is_running": session.is_running,
    })


@chat_bp.route("/chat/sessions", methods=["GET"])
def list_sessions():
    """List all active sessions."""
    sessions = current_app.config["sessions"]
    result = []
    for sid, session in sessions.items():
        result.append({
            "session_id": sid,
            "created_at": session.context.created_at,
            "message_count": len(session.chat_history),
            "is_running": session.is_running,
        })

    return jsonify({"sessions": result})


@chat_bp.route("/chat/session/<session_id>", methods=["DELETE"])
def delete_session(session_id):
    """Delete a session."""
    sessions = current_app.config["sessions"]
    if session_id in sessions:
        del sessions[session_id]
        return jsonify({"status": "deleted"})

    return jsonify({"error": "Session not found"}), 404


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _preflight(session: SessionState) -> tuple[bool, str]:
    config = session.config
    if not config.endpoint.health_check_on_start:
        return True, ""

    client = session.context.client
    if not _run_async(client.health_check()):
        return False, f"Cannot connect to {client.base_url}"

    try:
        missing = _run_async(client.get_missing_models([config.chat_model.model_name]))
    except Exception as e:
        return False, str(e)

    if missing:
        return False, f"Model not served by {client.base_url}: {', '.join(missing)}"
    return True, ""
