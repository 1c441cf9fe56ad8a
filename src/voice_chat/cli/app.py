"""
Hands-free voice chat with a remote assistant.
Listens, sends each utterance to the chat service, reads the reply aloud, repeats.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from voice_chat.cli.console import ConsoleRenderer
from voice_chat.cli.logging_utils import (
    ERROR_LOG_LABEL,
    LOGGER,
    configure_verbose_log_capture,
    set_verbose_logging,
)
from voice_chat.cli.session import SessionOptions, VoiceChatSession
from voice_chat.config import AUTO_SPEAK, CHAT_MODE, CHAT_MODES
from voice_chat.conversation.models import Attachment, load_image_attachment
from voice_chat.conversation.orchestrator import (
    EVENT_CAPTURE_ERROR,
    EVENT_VOICE_MODE,
    ConversationOrchestrator,
)
from voice_chat.core.exceptions import VoiceChatError

SYSTEM_LOG_LABEL = "SYSTEM"
CHAT_PROMPT = "> "
CHAT_HELP = (
    "Commands: /voice (toggle voice mode), /speak (read the last reply), "
    "/dictate (speak one message), /mode chat|query, /attach <image>, /reset, /quit"
)


async def run_voice_mode(session: VoiceChatSession) -> None:
    """Keep voice mode running until interrupted or a terminal capture error occurs."""

    orchestrator = session.orchestrator
    stopped = asyncio.Event()

    def _watch(event: str, payload: object) -> None:
        if event == EVENT_CAPTURE_ERROR or (event == EVENT_VOICE_MODE and payload is False):
            stopped.set()

    orchestrator.add_listener(_watch)
    if not orchestrator.activate():
        raise VoiceChatError("Voice mode could not be started.")
    LOGGER.log(SYSTEM_LOG_LABEL, "Voice mode on. Press Ctrl+C to stop.")
    await stopped.wait()
    if orchestrator.capture_error is not None:
        raise orchestrator.capture_error


class ChatCommandHandler:
    """Typed chat loop with slash commands for the voice features."""

    def __init__(self, orchestrator: ConversationOrchestrator):
        self._orchestrator = orchestrator
        self._pending_attachment: Optional[Attachment] = None

    async def handle(self, line: str) -> bool:
        """Process one input line; returns False when the loop should end."""

        text = line.strip()
        if not text:
            return True
        if not text.startswith("/"):
            await self._send(text)
            return True

        command, _, argument = text.partition(" ")
        argument = argument.strip()
        if command in ("/quit", "/exit"):
            return False
        if command == "/voice":
            active = self._orchestrator.toggle_voice_mode()
            LOGGER.log(SYSTEM_LOG_LABEL, f"Voice mode {'on' if active else 'off'}.")
        elif command == "/speak":
            self._speak_last_reply()
        elif command == "/dictate":
            heard = await self._orchestrator.dictate()
            if heard:
                await self._send(heard)
            else:
                LOGGER.log(SYSTEM_LOG_LABEL, "Nothing was heard.")
        elif command == "/mode":
            if argument not in CHAT_MODES:
                LOGGER.log(SYSTEM_LOG_LABEL, f"Usage: /mode {'|'.join(CHAT_MODES)}")
            else:
                LOGGER.log(SYSTEM_LOG_LABEL, f"Mode: {self._orchestrator.set_mode(argument)}")
        elif command == "/attach":
            self._attach(argument)
        elif command == "/reset":
            if await self._orchestrator.reset():
                self._pending_attachment = None
        else:
            LOGGER.log(SYSTEM_LOG_LABEL, CHAT_HELP)
        return True

    async def _send(self, text: str) -> None:
        attachment = self._pending_attachment
        self._pending_attachment = None
        await self._orchestrator.send_message(text, attachment)

    def _speak_last_reply(self) -> None:
        replies = [m for m in self._orchestrator.messages if m.role == "assistant"]
        if not replies:
            LOGGER.log(SYSTEM_LOG_LABEL, "No reply to read yet.")
            return
        self._orchestrator.toggle_speech(replies[-1].text)

    def _attach(self, argument: str) -> None:
        if not argument:
            LOGGER.log(SYSTEM_LOG_LABEL, "Usage: /attach <path to image>")
            return
        try:
            self._pending_attachment = load_image_attachment(argument)
        except (OSError, ValueError) as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Cannot attach {argument}: {exc}", error=True)
            return
        name = self._pending_attachment.name
        LOGGER.log(SYSTEM_LOG_LABEL, f"Attached {name} to the next message.")


async def run_chat_mode(session: VoiceChatSession) -> None:
    handler = ChatCommandHandler(session.orchestrator)
    LOGGER.log(SYSTEM_LOG_LABEL, CHAT_HELP)
    while True:
        try:
            line = await asyncio.to_thread(input, CHAT_PROMPT)
        except EOFError:
            break
        if not await handler.handle(line):
            break


async def run_session(args: argparse.Namespace) -> None:
    options = SessionOptions(mode=args.chat_mode, auto_speak=args.auto_speak)
    async with VoiceChatSession(options) as session:
        orchestrator = session.orchestrator
        renderer = ConsoleRenderer(sources_provider=lambda: orchestrator.sources)
        orchestrator.add_listener(renderer)
        if args.mode == "chat":
            await run_chat_mode(session)
        else:
            await run_voice_mode(session)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(description="Hands-free voice chat with a remote assistant.")
    parser.add_argument(
        "mode",
        nargs="?",
        choices=["run", "chat"],
        default="run",
        help="'run' starts voice mode immediately; 'chat' opens a typed session (default: run)",
    )
    parser.add_argument(
        "--mode",
        dest="chat_mode",
        choices=CHAT_MODES,
        default=CHAT_MODE,
        help=f"Chat service mode sent with every message (default: {CHAT_MODE}).",
    )
    parser.add_argument(
        "--no-auto-speak",
        dest="auto_speak",
        action="store_false",
        default=AUTO_SPEAK,
        help="Do not read replies to typed messages aloud.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed diagnostic logs (state transitions, timers, websocket traffic).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write verbose logs to this file (ANSI colors stripped).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point"""

    args = parse_args(argv)
    set_verbose_logging(args.verbose)
    if args.log_file is not None:
        configure_verbose_log_capture(args.log_file)

    try:
        asyncio.run(run_session(args))
    except KeyboardInterrupt:
        LOGGER.log(SYSTEM_LOG_LABEL, "Shutdown requested")
    except VoiceChatError as exc:
        LOGGER.log(ERROR_LOG_LABEL, str(exc), error=True)
        sys.exit(1)
    except Exception as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"CLI error: {exc}", error=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
