"""Bot - decides when to respond and assembles the prompt for a reply."""

from __future__ import annotations

import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Sequence

from agent.config import BotConfig
from agent.conversation import ConversationLoop
from agent.log_utils import build_file_logger
from agent.messages import Message
from agent.notifier import ClientNotifier

MEMORIES_HEADER = "Here are all your memories relevant to this conversation, with message sender in brackets:\n"
OTHER_SOURCE_HEADER = "Here are the recent messages in {source}:\n"


@dataclass
class ChatMessage:
    """One line of chat as seen by a chat source."""
    sender: str | None
    message: str


@dataclass
class ChatSourceHistory:
    """Recent messages from another chat source the bot is connected to."""
    chat_source: str
    chat_history: list[ChatMessage] = field(default_factory=list)


@dataclass
class MemoryEntry:
    """Something a bot remembered from an earlier conversation."""
    bot: str
    chat_source: str
    social_context: str
    message: str
    sender: str | None = None
    date: datetime | None = None


class MemoryManager(ABC):
    """Decides what a bot remembers and which memories go into a prompt."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def load_relevant_memories(
        self,
        chat_source: str,
        bot_name: str,
        social_context: str,
        trigger_message: str,
    ) -> list[MemoryEntry]:
        ...

    @abstractmethod
    async def maybe_save_memory(
        self,
        chat_source: str,
        bot_name: str,
        social_context: str,
        sender: str | None,
        trigger_message: str,
    ) -> bool:
        """Return True when the message was remembered."""
        ...


@dataclass
class BotTrigger:
    """Which messages a bot responds to, and how likely it is to respond."""
    pattern: re.Pattern
    social_context: str | None = None
    probability: float = 1.0

    @classmethod
    def compile(cls, pattern: str, social_context: str | None = None, probability: float = 1.0) -> "BotTrigger":
        return cls(
            pattern=re.compile(pattern, re.IGNORECASE),
            social_context=social_context,
            probability=probability,
        )

    def applies(self, social_context: str, message: str, rng: Callable[[], float] = random.random) -> bool:
        if self.social_context and self.social_context != social_context:
            return False
        if rng() > self.probability:
            return False
        return self.pattern.search(message) is not None


class Bot:
    """
    A named persona that lives in one or more social contexts.
    Call will_respond() first; generate_response() assumes the bot wants to answer.
    """

    def __init__(
        self,
        name: str,
        personality: str,
        social_contexts: Sequence[str],
        triggers: Sequence[BotTrigger] | None,
        loop_factory: Callable[[], ConversationLoop],
        memory_manager: MemoryManager | None = None,
        tool_names: Sequence[str] | None = None,
        log_dir: str | None = None,
    ):
        self.name = name
        self.personality = personality
        self.social_contexts = list(social_contexts)
        self.loop_factory = loop_factory
        self.memory_manager = memory_manager
        self.tool_names = list(dict.fromkeys(tool_names)) if tool_names is not None else None
        self._logger = build_file_logger("bot", log_dir) if log_dir else None

        if triggers:
            self.triggers = list(triggers)
        else:
            self.triggers = [BotTrigger.compile(rf"\b{re.escape(name)}\b")]

    @classmethod
    def from_config(
        cls,
        config: BotConfig,
        loop_factory: Callable[[], ConversationLoop],
        memory_manager: MemoryManager | None = None,
        log_dir: str | None = None,
    ) -> "Bot":
        return cls(
            name=config.name,
            personality=config.personality,
            social_contexts=config.social_contexts,
            triggers=[
                BotTrigger.compile(t.pattern, t.social_context, t.probability)
                for t in config.triggers
            ],
            loop_factory=loop_factory,
            memory_manager=memory_manager,
            tool_names=config.tools,
            log_dir=log_dir,
        )

    def will_respond(
        self,
        social_context: str,
        message: str,
        rng: Callable[[], float] = random.random,
    ) -> bool:
        """Whether any trigger fires for this message. Probability is rolled per trigger."""
        return any(trigger.applies(social_context, message, rng) for trigger in self.triggers)

    def is_member_of_social_context(self, social_context: str) -> bool:
        return social_context in self.social_contexts

    def is_member_of_any_social_context(self, social_contexts: Iterable[str]) -> bool:
        return any(self.is_member_of_social_context(sc) for sc in social_contexts)

    def build_messages(
        self,
        trigger_message: str,
        sender: str | None,
        memories: Sequence[MemoryEntry] = (),
        chat_history: Sequence[ChatMessage] = (),
        other_histories: Sequence[ChatSourceHistory] = (),
    ) -> list[Message]:
        """Assemble the prompt: personality, memories, chat history, other sources, trigger."""
        messages = [Message.system(self.personality)]

        if memories:
            text = MEMORIES_HEADER
            for memory in memories:
                text += f"* {_sender_prefix(memory.sender)}{memory.message}\n"
            messages.append(Message.user(text))

        for chat_message in chat_history:
            if chat_message.sender and chat_message.sender.lower() == self.name.lower():
                messages.append(Message.assistant(chat_message.message))
            else:
                messages.append(Message.user(_sender_prefix(chat_message.sender) + chat_message.message))

        for history in other_histories:
            text = OTHER_SOURCE_HEADER.format(source=history.chat_source)
            for chat_message in history.chat_history:
                text += f"* {chat_message.message}\n"
            messages.append(Message.user(text))

        messages.append(Message.user(_sender_prefix(sender) + trigger_message))
        return messages

    async def generate_response(
        self,
        chat_source_name: str,
        social_context: str,
        sender: str | None,
        trigger_message: str,
        chat_history: Sequence[ChatMessage],
        other_histories: Sequence[ChatSourceHistory] = (),
        notifier: ClientNotifier | None = None,
    ) -> str:
        self._log("info", "%s received message %r in social context %s", self.name, trigger_message, social_context)

        memories: list[MemoryEntry] = []
        if self.memory_manager:
            memories = await self.memory_manager.load_relevant_memories(
                chat_source_name, self.name, social_context, trigger_message
            )
            try:
                await self.memory_manager.maybe_save_memory(
                    chat_source_name, self.name, social_context, sender, trigger_message
                )
            except Exception as e:
                self._log("error", "Failed to save memory: %s", e)

        messages = self.build_messages(
            trigger_message,
            sender,
            memories=memories,
            chat_history=chat_history,
            other_histories=other_histories,
        )

        loop = self.loop_factory()
        tools = None
        if self.tool_names is not None:
            available = [n for n in self.tool_names if n in loop.tool_registry]
            missing = sorted(set(self.tool_names) - set(available))
            if missing:
                self._log("warning", "%s has unregistered tools configured: %s", self.name, ", ".join(missing))
            tools = loop.tool_registry.subset(available)
        response = await loop.run(messages, notifier=notifier, tools=tools)
        self._log("info", "%s will respond", self.name)
        return response

    def _log(self, level: str, msg: str, *args) -> None:
        if self._logger:
            getattr(self._logger, level)(msg, *args)


def _sender_prefix(sender: str | None) -> str:
    return f"[{sender}]: " if sender else ""
