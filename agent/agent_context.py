"""AgentContext - wires client, tools, executor and bots for one session."""

from __future__ import annotations
import uuid
from datetime import datetime, timezone
from agent.bot import Bot, MemoryManager
from agent.config import AgentConfig
from agent.conversation import ConversationLoop
from agent.executor import ToolExecutor
from agent.models import ChatCompletionsClient
from agent.telemetry import Telemetry
from tools.tool_registry import ToolRegistry


class AgentContext:
    """
    A session. One per console run or web conversation.
    Holds the shared, read-only collaborators; every run gets its own loop.
    """

    def __init__(
        self,
        config: AgentConfig,
        session_id: str | None = None,
        tool_registry: ToolRegistry | None = None,
        client: ChatCompletionsClient | None = None,
        memory_manager: MemoryManager | None = None,
    ):
        self.id: str = session_id or uuid.uuid4().hex[:12]
        self.config = config
        self.created_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        self.telemetry: Telemetry = Telemetry(config.telemetry, self.id)

        self.client = client or ChatCompletionsClient(
            base_url=config.chat_model.base_url,
            api_key=config.chat_model.api_key,
            connect_timeout=config.endpoint.connect_timeout,
            read_timeout=config.endpoint.read_timeout,
            max_retries=config.endpoint.max_retries,
            log_dir=config.log_dir,
        )

        if tool_registry is None:
            tool_registry = ToolRegistry(log_dir=config.log_dir)
            tool_registry.discover_tools(config)
        self.tool_registry = tool_registry

        self.executor = ToolExecutor(
            self.tool_registry,
            config=config.tool_execution,
            log_dir=config.log_dir,
            telemetry=self.telemetry,
        )

        self.bots: dict[str, Bot] = {}
        for bot_config in config.bots:
            bot = Bot.from_config(
                bot_config,
                loop_factory=self.create_loop,
                memory_manager=memory_manager,
                log_dir=config.log_dir,
            )
            self.bots[bot.name.lower()] = bot

    def create_loop(self) -> ConversationLoop:
        """Build a fresh loop. Loops hold per-run state and must not be shared."""
        model = self.config.chat_model
        return ConversationLoop(
            client=self.client,
            tool_registry=self.tool_registry,
            executor=self.executor,
            model_name=model.model_name,
            temperature=model.temperature,
            max_tool_rounds=self.config.max_tool_rounds,
            telemetry=self.telemetry,
            log_dir=self.config.log_dir,
            json_mode=model.json_mode,
            options=model.options,
        )

    def get_bot(self, name: str) -> Bot | None:
        return self.bots.get(name.lower())

    def bots_in(self, social_context: str) -> list[Bot]:
        """Bots that are members of the given social context, in config order."""
        return [bot for bot in self.bots.values() if bot.is_member_of_social_context(social_context)]
