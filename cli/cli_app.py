"""Interactive console chat source."""

import sys
from collections import deque
from agent.config import AgentConfig
from agent.agent_context import AgentContext
from agent.bot import Bot, ChatMessage
from agent.messages import Message
from agent.models import ChatCompletionsClient
from agent.notifier import ClientNotifier


# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
MAGENTA = "\033[35m"

BOT_COLORS = [GREEN, CYAN, MAGENTA, YELLOW]

CONSOLE_SENDER = "User"
CONSOLE_SOURCE = "console"


class ConsoleNotifier(ClientNotifier):
    """Prints streamed content and tool activity as it happens."""

    def __init__(self, bot_name: str, color: str = GREEN, out=None):
        self.bot_name = bot_name
        self.color = color
        self.out = out or sys.stdout
        self._streaming = False

    def on_status(self, text: str) -> None:
        self._end_line()
        self.out.write(f"{DIM}[{self.bot_name}] {text}{RESET}\n")
        self.out.flush()

    def on_content_chunk(self, text: str, finish_reason: str | None) -> None:
        if not text:
            return
        if not self._streaming:
            self.out.write(f"{BOLD}{self.color}{self.bot_name}:{RESET} ")
            self._streaming = True
        self.out.write(text)
        self.out.flush()

    def on_tool_call_message(self, message: Message) -> None:
        self._end_line()
        if message.tool_calls:
            for call in message.tool_calls:
                self.out.write(f"{DIM}[{self.bot_name}] calling {call.name}({call.arguments_text}){RESET}\n")
        else:
            preview = (message.content or "")[:120]
            self.out.write(f"{DIM}[{self.bot_name}] tool result: {preview}{RESET}\n")
        self.out.flush()

    def finish(self) -> None:
        self._end_line()

    def _end_line(self) -> None:
        if self._streaming:
            self.out.write("\n")
            self._streaming = False


class CLIApp:
    """Console REPL. Every bot in the console social context may answer each line."""

    def __init__(self, config: AgentConfig, context: AgentContext | None = None):
        self.config = config
        self.social_context = config.console.social_context
        self.context = context or AgentContext(config)
        self.chat_history: deque[ChatMessage] = deque(maxlen=config.console.chat_history_length)

    async def run(self):
        """Main REPL loop."""
        self._print_banner()

        if not await self._preflight():
            return

        if not self.context.bots_in(self.social_context):
            print(f"{YELLOW}[Warning] No bot is a member of '{self.social_context}', nobody will answer{RESET}")
        print()

        while True:
            try:
                user_input = input(f"{BOLD}You:{RESET} ").strip()
            except (EOFError, KeyboardInterrupt):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            if not user_input:
                continue

            # Commands
            command = user_input.lower()
            if command in ("/exit", "/quit"):
                print(f"{DIM}Goodbye!{RESET}")
                break
            if command == "/reset":
                self.chat_history.clear()
                print(f"{DIM}[Chat history cleared]{RESET}")
                continue
            if command == "/tools":
                self._print_tools()
                continue
            if command == "/help":
                self._print_help()
                continue

            await self.handle_message(user_input)
            print()

    async def handle_message(self, text: str, sender: str = CONSOLE_SENDER) -> list[tuple[str, str]]:
        """
        Offer a line to every bot in the console social context.
        History is updated only after all bots have had their turn.
        """
        history = list(self.chat_history)
        new_entries = [ChatMessage(sender=sender, message=text)]
        replies: list[tuple[str, str]] = []

        for i, bot in enumerate(self.context.bots_in(self.social_context)):
            if not bot.will_respond(self.social_context, text):
                continue
            notifier = ConsoleNotifier(bot.name, BOT_COLORS[i % len(BOT_COLORS)])
            reply = await self._ask(bot, sender, text, history, notifier)
            notifier.finish()
            if reply:
                replies.append((bot.name, reply))
                new_entries.append(ChatMessage(sender=bot.name, message=reply))

        self.chat_history.extend(new_entries)
        return replies

    async def _ask(self, bot: Bot, sender: str, text: str, history: list[ChatMessage], notifier) -> str | None:
        try:
            return await bot.generate_response(
                CONSOLE_SOURCE,
                self.social_context,
                sender,
                text,
                history,
                notifier=notifier,
            )
        except Exception as e:
            notifier.finish()
            print(f"{RED}[{bot.name} error: {e}]{RESET}")
            return None

    def _print_banner(self):
        bots = ", ".join(bot.name for bot in self.context.bots_in(self.social_context)) or "none"
        print(f"""
{BOLD}{CYAN}Tool Loop Bots{RESET}
{DIM}Chat model: {self.config.chat_model.model_name}
Endpoint: {self.config.chat_model.base_url}
Social context: {self.social_context} (bots: {bots})
Tools: {', '.join(self.context.tool_registry.tool_names) or 'none'}{RESET}
""")

    def _print_help(self):
        print(f"""
{BOLD}Commands:{RESET}
  {CYAN}/tools{RESET}  - List the tools bots may call
  {CYAN}/reset{RESET}  - Clear the chat history
  {CYAN}/help{RESET}   - Show this help
  {CYAN}/exit{RESET}   - Quit

{BOLD}How it works:{RESET}
  Every bot in the console social context sees your message and
  answers when one of its triggers matches. A bot may call tools
  before it answers; tool activity is shown dimmed.
""")

    def _print_tools(self):
        definitions = self.context.tool_registry.list_definitions()
        if not definitions:
            print(f"{DIM}[No tools registered]{RESET}")
            return
        for definition in definitions:
            print(f"  {CYAN}{definition.name}{RESET} - {definition.description}")

    async def _preflight(self) -> bool:
        """Check endpoint connectivity and model availability before starting."""
        if not self.config.endpoint.health_check_on_start:
            return True

        client: ChatCompletionsClient = self.context.client
        if not await client.health_check():
            print(f"{RED}[Error] Cannot connect to {client.base_url}{RESET}")
            print(f"{DIM}Check chat_model.base_url and your API key{RESET}")
            return False

        try:
            missing = await client.get_missing_models([self.config.chat_model.model_name])
        except Exception as e:
            print(f"{RED}[Error] {e}{RESET}")
            return False

        if missing:
            print(f"{RED}[Error] Model not served by {client.base_url}: {', '.join(missing)}{RESET}")
            return False
        return True
