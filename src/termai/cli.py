"""Entry point: click CLI, config resolution, single-turn and agent modes."""

import asyncio
import logging
import os
import sys
from pathlib import Path

import click

from termai.config import DEFAULTS, ConfigError, load_config, resolve
from termai.engine import Conversation
from termai.errors import PersistenceError, ProviderError, ToolLoopExceeded
from termai.functions.execute_command import build_registry
from termai.log import setup_logging
from termai.messages import FunctionCall, FunctionResult
from termai.pricing import CostTracker, ModelCatalog
from termai.prompts import BASIC_SYSTEM_PROMPT, CONTEXT_SYSTEM_PROMPT, agent_system_prompt
from termai.providers import API_KEY_ENV, PROVIDER_NAMES, LLMProvider, ProviderType, create_provider
from termai.render import StreamPrinter, render_error, render_threads, render_tool_call, render_tool_result
from termai.session import AgentSession, run_single
from termai.threads import ThreadStore

logger = logging.getLogger(__name__)


def _show_history(db_path: Path | None) -> None:
    """Display recent threads."""
    store = ThreadStore(db_path)
    try:
        render_threads(store.list_threads())
    finally:
        store.close()


def _read_piped_input() -> str | None:
    if sys.stdin is None or sys.stdin.isatty():
        return None
    data = sys.stdin.read()
    return data if data.strip() else None


def build_conversation(
    provider: LLMProvider, system_prompt: str, max_tool_rounds: int, printer: StreamPrinter
) -> Conversation:
    def on_call(call: FunctionCall) -> None:
        printer.end_line()
        render_tool_call(call.name, call.arguments)

    def on_result(result: FunctionResult) -> None:
        render_tool_result(result.result, result.error)

    return Conversation(
        provider,
        build_registry(),
        system_prompt=system_prompt,
        max_tool_rounds=max_tool_rounds,
        on_function_call=on_call,
        on_function_result=on_result,
    )


async def _run(
    settings: dict,
    user_input: str,
    context: str | None,
    agent: bool,
    thread_id: str | None,
) -> int:
    catalog = ModelCatalog.load()
    provider_name = settings["provider"]
    model = settings["model"] or catalog.default_model(provider_name)

    try:
        provider = create_provider(
            provider_name,
            model,
            api_key=settings["api_key"],
            base_url=settings["base_url"],
            temperature=settings["temperature"],
        )
    except ValueError as e:
        render_error(f"Could not set up provider '{provider_name}': {e}")
        return 1

    printer = StreamPrinter()
    costs = CostTracker(model, catalog)
    store: ThreadStore | None = None
    try:
        if not agent:
            system_prompt = CONTEXT_SYSTEM_PROMPT if context else BASIC_SYSTEM_PROMPT
            conversation = build_conversation(provider, system_prompt, settings["max_tool_rounds"], printer)
            try:
                await run_single(
                    conversation, user_input, context,
                    show_cost=settings["show_cost"], cost_tracker=costs, printer=printer,
                )
            except (ProviderError, ToolLoopExceeded) as e:
                printer.end_line()
                render_error(str(e))
                return 1
            return 0

        try:
            store = ThreadStore(settings["db_path"])
        except PersistenceError as e:
            render_error(str(e))
            return 1

        conversation = build_conversation(
            provider, agent_system_prompt(), settings["max_tool_rounds"], printer
        )
        session = AgentSession(
            conversation, store,
            show_cost=settings["show_cost"], cost_tracker=costs, printer=printer,
        )
        await session.run(user_input, context=context, thread_id=thread_id)
        return 0
    finally:
        await provider.close()
        if store is not None:
            store.close()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("words", nargs=-1)
@click.option("--agent", is_flag=True, help="Start a multi-turn agent session that can run several commands.")
@click.option("--thread", "thread_id", default=None, help="Resume an agent thread by ID.")
@click.option("--provider", default=None, type=click.Choice(PROVIDER_NAMES, case_sensitive=False), help="Model provider (default: openai).")
@click.option("--model", default=None, help="Model ID to use (default: the provider's default model).")
@click.option("--api-key", default=None, envvar="TERMAI_API_KEY", help="API key (or set TERMAI_API_KEY / the provider's own variable).")
@click.option("--base-url", default=None, help="Override the provider's API base URL.")
@click.option("--temperature", default=None, type=float, help="Sampling temperature for the model.")
@click.option("--cost/--no-cost", "show_cost", default=None, help="Show token usage and cost after each response.")
@click.option("--max-tool-rounds", default=None, type=click.IntRange(min=1), help="Stop a turn after this many rounds of function calls (default: 10).")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, path_type=Path), help="Path to config file (default: ~/.config/termai/config.toml).")
@click.option("--history", "show_history", is_flag=True, help="List recent agent threads.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(
    words: tuple[str, ...],
    agent: bool,
    thread_id: str | None,
    provider: str | None,
    model: str | None,
    api_key: str | None,
    base_url: str | None,
    temperature: float | None,
    show_cost: bool | None,
    max_tool_rounds: int | None,
    config_path: Path | None,
    show_history: bool,
    verbose: bool,
) -> None:
    """Turn a natural-language request into shell commands.

    \b
    Examples:
      ai list the five largest files here
      ai --agent set up a virtualenv and install requests
      git diff | ai summarize these changes
    """
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        setup_logging()
        render_error(str(e))
        raise SystemExit(1)

    setup_logging("DEBUG" if verbose else resolve(None, cfg.get("log_level"), DEFAULTS["log_level"]))

    db_path = resolve(None, cfg.get("db_path"), DEFAULTS["db_path"])
    db_path = Path(db_path).expanduser() if db_path else None

    if show_history:
        try:
            _show_history(db_path)
        except PersistenceError as e:
            render_error(str(e))
            raise SystemExit(1)
        return

    provider_name = resolve(provider, cfg.get("provider"), DEFAULTS["provider"]).lower()
    if provider_name not in PROVIDER_NAMES:
        render_error(f"Unknown provider '{provider_name}'. Options: {', '.join(PROVIDER_NAMES)}")
        raise SystemExit(1)

    env_key = API_KEY_ENV.get(ProviderType(provider_name))
    settings = {
        "provider": provider_name,
        "model": resolve(model, cfg.get("model"), DEFAULTS["model"]),
        "api_key": resolve(
            api_key,
            cfg.get("api_key"),
            os.environ.get(env_key) if env_key else DEFAULTS["api_key"],
        ),
        "base_url": resolve(base_url, cfg.get("base_url"), DEFAULTS["base_url"]),
        "temperature": resolve(temperature, cfg.get("temperature"), DEFAULTS["temperature"]),
        "show_cost": resolve(show_cost, cfg.get("show_cost"), DEFAULTS["show_cost"]),
        "max_tool_rounds": resolve(max_tool_rounds, cfg.get("max_tool_rounds"), DEFAULTS["max_tool_rounds"]),
        "db_path": db_path,
    }

    if not isinstance(settings["max_tool_rounds"], int) or settings["max_tool_rounds"] < 1:
        render_error("max_tool_rounds must be a positive integer")
        raise SystemExit(1)

    agent = agent or bool(thread_id)
    user_input = " ".join(words).strip()
    context = _read_piped_input()

    if not user_input and not agent:
        render_error("Nothing to do. Try: ai list files in this directory")
        raise SystemExit(1)

    logger.debug("Using provider %s, model %s", settings["provider"], settings["model"] or "(default)")
    try:
        code = asyncio.run(_run(settings, user_input, context, agent, thread_id))
    except KeyboardInterrupt:
        click.echo()
        render_error("Interrupted.")
        raise SystemExit(130)
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
