"""Flask application factory for the Tool Loop Bots HTTP API."""

import asyncio
import threading
from collections import deque
from flask import Flask
from flask_cors import CORS

from agent.config import AgentConfig
from agent.agent_context import AgentContext
from agent.bot import Bot, ChatMessage
from agent.models import ChatCompletionsClient
from agent.notifier import QueueNotifier
from tools.tool_registry import ToolRegistry

WEB_SOCIAL_CONTEXT = "web"
WEB_SOURCE = "web"
WEB_SENDER = "User"


def create_app(
    config: AgentConfig,
    tool_registry: ToolRegistry | None = None,
    client: ChatCompletionsClient | None = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    if tool_registry is None:
        tool_registry = ToolRegistry(log_dir=config.log_dir)
        tool_registry.discover_tools(config)

    # Shared state
    app.config["agent_config"] = config
    app.config["tool_registry"] = tool_registry
    app.config["chat_client"] = client
    app.config["sessions"] = {}  # session_id -> SessionState

    # Register blueprints
    from web.routes.chat import chat_bp
    from web.routes.tools import tools_bp
    from web.routes.metrics import metrics_bp

    app.register_blueprint(chat_bp, url_prefix="/api")
    app.register_blueprint(tools_bp, url_prefix="/api")
    app.register_blueprint(metrics_bp, url_prefix="/api")

    return app


class SessionState:
    """Holds the state for one chat session."""

    def __init__(
        self,
        config: AgentConfig,
        session_id: str | None = None,
        tool_registry: ToolRegistry | None = None,
        client: ChatCompletionsClient | None = None,
    ):
        self.config = config
        self.context = AgentContext(
            config,
            session_id=session_id,
            tool_registry=tool_registry,
            client=client,
        )
        self.notifier = QueueNotifier()
        self.stream_queue = self.notifier.queue
        self.chat_history: deque[ChatMessage] = deque(maxlen=config.console.chat_history_length)
        self.is_running = False
        self.final_response: str | None = None

    @property
    def id(self) -> str:
        return self.context.id

    def default_bot(self) -> Bot | None:
        bots = self.context.bots_in(WEB_SOCIAL_CONTEXT)
        return bots[0] if bots else None

    def send_message(self, message: str, bot: Bot) -> threading.Thread:
        """Run one bot turn in a background thread, streaming through the queue."""
        self.is_running = True
        self.final_response = None
        history = list(self.chat_history)

        def run_in_thread():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                result = loop.run_until_complete(bot.generate_response(
                    WEB_SOURCE,
                    WEB_SOCIAL_CONTEXT,
                    WEB_SENDER,
                    message,
                    history,
                    notifier=self.notifier,
                ))
                self.final_response = result
                self.chat_history.append(ChatMessage(sender=WEB_SENDER, message=message))
                self.chat_history.append(ChatMessage(sender=bot.name, message=result))
                self.stream_queue.put({
                    "type": "done",
                    "bot": bot.name,
                    "content": result,
                })
            except Exception as e:
                self.stream_queue.put({
                    "type": "error",
                    "content": str(e),
                })
            finally:
                self.is_running = False
                loop.close()

        thread = threading.Thread(target=run_in_thread, daemon=True)
        thread.start()
        return thread
