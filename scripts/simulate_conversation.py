#!/usr/bin/env python3
"""
Simulate a visitor by submitting every quick action (plus a few free-form
questions) to the conversation engine in text-only mode, then print the
transcript.

    python scripts/simulate_conversation.py [rule_pack]
"""

import asyncio
import logging
import sys
import os

# Add root to sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from voice_faq.config import AppConfig
from voice_faq.conversation.controller import ConversationController
from voice_faq.conversation.rule_pack import load_rule_pack
from voice_faq.event_bus import Event, EventBus, EventType

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("simulation")

EXTRA_QUESTIONS = [
    "Salem",
    "my app is not working",
    "asdkjhasd",
]


async def run_simulation(pack_name: str):
    config = AppConfig.from_env()
    config.assistant.auto_listen = False
    bus = EventBus()

    pack = load_rule_pack(pack_name)

    async def on_state(event: Event):
        print(f"   · {event.data['previous'].value} → {event.data['state'].value}")

    bus.subscribe(EventType.STATE_CHANGED, on_state)
    await bus.start()

    controller = ConversationController(
        pack.build_matcher(),
        bus,
        config=config.assistant,
        greeting=pack.greeting,
        quick_actions=pack.quick_actions,
    )

    print("\n" + "=" * 50)
    print(f"🚀 Simulation Started (pack: {pack.name}, {len(pack.rules)} rules)")
    print("=" * 50)

    async with controller:
        for i in range(len(pack.quick_actions)):
            print(f"\n📢 [Quick action {i + 1}/{len(pack.quick_actions)}]: {pack.quick_actions[i]}")
            await controller.submit_quick_action(i)
            await asyncio.sleep(config.assistant.thinking_delay + 0.1)
            await controller.drain()

        for q in EXTRA_QUESTIONS:
            print(f"\n⌨️  [Typed]: {q}")
            await controller.submit_text(q)
            await asyncio.sleep(config.assistant.thinking_delay + 0.1)
            await controller.drain()

        turns = controller.transcript

    # Let the state printer catch up
    await asyncio.sleep(0.2)
    await bus.stop()

    print("\n" + "=" * 50)
    print("📝 Transcript")
    print("=" * 50)
    for turn in turns:
        print(f"[{turn.id:02d}] {turn.speaker.value:>9}: {turn.text}")
    print("\n✅ Simulation Complete!")


if __name__ == "__main__":
    asyncio.run(run_simulation(sys.argv[1] if len(sys.argv) > 1 else "gromo"))
