"""
Main orchestrator — wires all components together and runs the async event loop.
Entry point: python -m voice_faq
"""

import asyncio
import logging
import signal

from .config import AppConfig
from .conversation.controller import ConversationController
from .conversation.rule_pack import load_rule_pack
from .event_bus import EventBus
from .presentation.server import WebSocketServer
from .speech.base import SpeechOptions
from .speech.factory import create_capture_service, create_playback_service

logger = logging.getLogger("voice_faq")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def prepare_capture(capture):
    """Load capture models before the session starts; None if they cannot load."""
    if capture is None or not capture.available:
        return capture
    try:
        await capture.initialize()
    except Exception:
        logger.exception("Capture models failed to load; typed input only")
        return None
    return capture


async def main():
    """Bootstrap and run all system components."""
    config = AppConfig.from_env()
    setup_logging(config.log_level)
    bus = EventBus()

    logger.info("=" * 60)
    logger.info("  Voice FAQ Assistant — Starting Up")
    logger.info("=" * 60)

    # ── 1. Load FAQ content ────────────────────────────────────
    pack = load_rule_pack(config.assistant.rules_pack)
    matcher = pack.build_matcher()

    # ── 2. Initialize speech engines ───────────────────────────
    capture = create_capture_service(config.capture)
    if capture is not None and not capture.available:
        logger.warning("Capture engine '%s' is not installed; typed input only",
                       config.capture.engine_type)
    capture = await prepare_capture(capture)
    playback = create_playback_service(config.voice)
    if playback is not None and not playback.available:
        logger.warning("Playback engine '%s' is not installed; answers will not be spoken",
                       config.voice.engine_type)

    # ── 3. Wire up the conversation engine ─────────────────────
    controller = ConversationController(
        matcher,
        bus,
        config=config.assistant,
        capture=capture,
        playback=playback,
        speech_options=SpeechOptions.from_config(config.voice),
        greeting=pack.greeting,
        quick_actions=pack.quick_actions,
    )

    # ── 4. Presentation binding ────────────────────────────────
    ws_server = WebSocketServer(config.server, bus, controller)

    # ── 5. Start the event bus and the session ─────────────────
    await bus.start()
    await controller.start()

    # ── 6. Graceful shutdown handling ──────────────────────────
    shutdown_event = asyncio.Event()

    def _signal_handler():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            pass  # Windows

    # ── 7. Run until the server exits or we are told to stop ───
    logger.info(
        "🚀 Open ws://%s:%d/ws from the widget",
        config.server.host, config.server.port
    )
    server_task = asyncio.create_task(ws_server.start())
    waiter = asyncio.create_task(shutdown_event.wait())
    try:
        await asyncio.wait({server_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        pass
    finally:
        logger.info("Shutting down...")
        for task in (server_task, waiter):
            task.cancel()
        await asyncio.gather(server_task, waiter, return_exceptions=True)
        await controller.close()
        if capture is not None:
            await capture.stop()
        if playback is not None:
            await playback.close()
        await ws_server.stop()
        await bus.stop()
        logger.info("Bye! 👋")


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
