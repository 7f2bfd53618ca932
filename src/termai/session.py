"""Agent session loop and single-turn mode."""

import logging
from collections.abc import Callable

from termai.engine import Conversation, TurnResult
from termai.errors import PersistenceError, ProviderError, ToolLoopExceeded
from termai.messages import AssistantMessage, Message, UserMessage
from termai.pricing import CostTracker
from termai.render import (
    StreamPrinter,
    console,
    render_error,
    render_info,
    render_rule,
    render_user,
)
from termai.threads import Thread, ThreadStore

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"exit", "quit", "q"})
HELP_COMMAND = "help"
MAX_THREAD_NAME = 120

HELP_MESSAGE = """
Available commands:
  exit, quit, q - Exit agent mode
  help - Show this help message
"""
EMPTY_INPUT_MESSAGE = "Please enter a command or question. Type help for available commands."
WELCOME_MESSAGE = "\n=== Terminal AI Assistant ===\nType your questions or commands. Type help for available commands.\n"


def default_prompt() -> str:
    return console.input("[green]>> [/green]")


def with_context(user_input: str, context: str | None) -> str:
    if context and context.strip():
        return f"{user_input}\n\nAdditional context from piped input:\n{context}"
    return user_input


def derive_thread_name(history: list[Message]) -> str | None:
    """Name a thread after its first user message and the reply that closed that turn.

    Interim assistant text sent alongside function calls is skipped in favour
    of the last assistant message before the next user message.
    """
    user = None
    reply = None
    for m in history:
        if isinstance(m, UserMessage):
            if user is not None:
                break
            user = m.content
        elif isinstance(m, AssistantMessage) and user is not None:
            reply = m.content
    if user is None or reply is None:
        return None
    combined = f"{user} {reply}"
    if len(combined) > MAX_THREAD_NAME:
        return f"{combined[:MAX_THREAD_NAME].strip()}..."
    return combined


class AgentSession:
    """Drives repeated turns against one persisted thread."""

    def __init__(
        self,
        conversation: Conversation,
        store: ThreadStore,
        prompt: Callable[[], str] = default_prompt,
        show_cost: bool = False,
        cost_tracker: CostTracker | None = None,
        printer: StreamPrinter | None = None,
    ) -> None:
        self.conversation = conversation
        self.store = store
        self.prompt = prompt
        self.show_cost = show_cost
        self.costs = cost_tracker or CostTracker(conversation.provider.get_model())
        self.printer = printer or StreamPrinter()

    def open_thread(self, thread_id: str | None = None) -> Thread:
        """Load ``thread_id``, or create a new thread when it is absent or unknown."""
        if thread_id:
            thread = self.store.get_thread(thread_id)
            if thread is not None:
                render_info(f"Loaded thread: {thread.name} ({thread.id})")
                return thread
            logger.info("Thread %s not found, creating a new one", thread_id)
            render_info(f"Thread with ID {thread_id} not found. Creating a new thread.", style="yellow")

        thread = self.store.create_thread()
        render_info(f"Created new thread: {thread.name} ({thread.id})")
        return thread

    def read_input(self) -> str | None:
        """Prompt until there is something to send. Returns None on an exit command."""
        while True:
            try:
                text = self.prompt().strip()
            except EOFError:
                return None
            if text in EXIT_COMMANDS:
                render_info("Exiting agent mode")
                return None
            if text == HELP_COMMAND:
                render_info(HELP_MESSAGE, style="cyan")
                continue
            if not text:
                render_info(EMPTY_INPUT_MESSAGE, style="yellow")
                continue
            return text

    async def run(
        self,
        initial_input: str = "",
        context: str | None = None,
        thread_id: str | None = None,
    ) -> Thread:
        thread = self.open_thread(thread_id)
        history = list(thread.messages)

        user_input: str | None = initial_input.strip()
        if not user_input:
            if not history:
                render_info(WELCOME_MESSAGE, style="bold cyan")
            user_input = self.read_input()
        if user_input is not None:
            user_input = with_context(user_input, context)

        while user_input is not None:
            render_user(user_input)
            history = await self.run_one(thread, history, user_input)
            render_rule()
            user_input = self.read_input()

        render_rule()
        render_info("Session ended.", style="bold blue")
        self.costs.display_total()
        return thread

    async def run_one(self, thread: Thread, history: list[Message], user_input: str) -> list[Message]:
        """Run a turn and commit it. Returns the history to continue from."""
        try:
            result = await self.conversation.run_turn(history, user_input, self.printer.token)
        except (ProviderError, ToolLoopExceeded) as e:
            self.printer.end_line()
            logger.error("Turn failed: %s", e)
            render_error(str(e))
            return history
        except Exception as e:
            self.printer.end_line()
            logger.exception("Turn failed")
            render_error(f"Unexpected error during this turn: {e}")
            return history
        self.printer.end_line()

        self.commit(thread, result)
        self.costs.add(result.usage)
        if self.show_cost:
            self.costs.display(result.usage)
        return result.history

    def commit(self, thread: Thread, result: TurnResult) -> None:
        """Persist the turn's history and give the thread a real name after its first exchange."""
        try:
            self.store.update_thread(thread.id, result.history)
            thread.messages = list(result.history)

            if thread.has_default_name and len(result.history) >= 2:
                name = derive_thread_name(result.history)
                if name and name != thread.name:
                    self.store.rename_thread(thread.id, name)
                    thread.name = name
        except PersistenceError as e:
            logger.error("Could not save thread %s: %s", thread.id, e)
            render_error(f"{e}. This exchange may not be saved.")


async def run_single(
    conversation: Conversation,
    user_input: str,
    context: str | None = None,
    show_cost: bool = False,
    cost_tracker: CostTracker | None = None,
    printer: StreamPrinter | None = None,
) -> TurnResult:
    """One unsaved turn, optionally seeded with piped context."""
    printer = printer or StreamPrinter()
    history: list[Message] = []
    if context:
        history.append(UserMessage(f"Context: {context}"))

    result = await conversation.run_turn(history, user_input, printer.token)
    printer.end_line()

    if show_cost:
        costs = cost_tracker or CostTracker(conversation.provider.get_model())
        costs.add(result.usage)
        costs.display(result.usage)
    return result
