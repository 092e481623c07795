"""Switchboard - interactive chat with mid-session model switching."""

import asyncio
import sys

import httpx

from switchboard import (
    ModelCommands,
    ModelStrength,
    ModelSwitchingCoordinator,
    configure_logging,
    create_generator_config,
    get_logger,
    get_settings,
)
from switchboard.inference import GeneratorError
from switchboard.logging.logger import bind_session

logger = get_logger(__name__)

BANNER = """
    Switchboard - model switching chat
    ══════════════════════════════════

    Commands:
        /model <name>|weak|strong   Switch model
        /auto-switch [on|off]       Toggle automatic switching
        /quit                       Exit
"""


async def handle_line(line: str, commands: ModelCommands) -> bool:
    """Handle one line of input; returns False when the session should end."""
    command, _, args = line.partition(" ")

    if command in ("/quit", "/exit"):
        return False

    if command == "/model":
        print((await commands.model(args)).content)
        return True

    if command == "/auto-switch":
        print(commands.auto_switch(args).content)
        return True

    if command.startswith("/"):
        print(f"Unknown command: {command}")
        return True

    coordinator = commands.coordinator
    chat = coordinator.get_current_chat()
    if chat is None:
        print("No active model. Use /model to select one.")
        return True

    if await commands.before_turn(line, chat.get_history()):
        print(f"[switched to {coordinator.get_current_strength().value} model "
              f"{coordinator.get_current_config().model}]")
        chat = coordinator.get_current_chat()

    try:
        async for chunk in chat.send_message_stream(line):
            print(chunk, end="", flush=True)
    except httpx.HTTPError as e:
        logger.error("turn_failed", error=str(e))
        print(f"\nRequest failed: {e}")
    print()
    return True


async def main() -> None:
    """Main entry point for Switchboard."""
    configure_logging()
    settings = get_settings()

    coordinator = ModelSwitchingCoordinator(settings=settings)
    bind_session(coordinator.session_context.session_id)
    logger.info("switchboard_starting", version="0.1.0", provider=settings.provider.value)

    config = create_generator_config(settings.model, settings.provider, settings)
    commands = ModelCommands(coordinator, config, settings.auto_switch_enabled)

    try:
        if settings.model or coordinator.get_model_config(settings.provider) is None:
            await coordinator.switch_model(config.model, settings.provider, config)
        else:
            await coordinator.switch_to_strength(ModelStrength.WEAK, settings.provider, config)
        commands.config = coordinator.get_current_config()
    except GeneratorError as e:
        print(f"Failed to start session: {e}")

    print(BANNER)

    try:
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if line and not await handle_line(line, commands):
                break
    except EOFError:
        pass
    finally:
        await coordinator.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("shutdown_requested")
        sys.exit(0)
