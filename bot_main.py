"""Main entry point for the karma bot.

This module initializes and runs the Zulip bot with support for:
- Karma tracking
- Factoids
- Greetings, uptime, botsnack and help
- A conversational fallback for addressed messages nothing else claims
"""
import logging
import os
from typing import Any, Dict, List

import trio

from config import ConfigManager
from core.client import ZulipTrioClient
from core.completion import CompletionClient
from core.directory import UserDirectory
from core.dispatcher import Dispatcher, FeatureHandler
from features.botsnack import BotsnackFeature
from features.conversation import ConversationFeature
from features.factoids import FactoidFeature
from features.greeting import GreetingFeature
from features.help import HelpFeature, capabilities_prompt
from features.karma import KarmaFeature
from features.uptime import UptimeFeature
from storage.file_store import KeyValueStore
from utils.scheduling import PendingRequestStore

logger = logging.getLogger(__name__)


def build_dispatcher(
    config_mgr: ConfigManager,
    client: ZulipTrioClient,
    bot_user: Dict[str, Any],
) -> Dispatcher:
    """Construct every enabled feature, register it and freeze the registry."""
    bot_name = bot_user.get("full_name") or "bot"
    dispatcher = Dispatcher(
        bot_user_id=str(bot_user["user_id"]) if bot_user.get("user_id") else None,
        bot_name=bot_name,
        team_id=config_mgr.section("bot").get("team_id", "default"),
    )

    directory = UserDirectory(client)
    store = KeyValueStore(config_mgr.section("storage").get("data_dir", "data"))
    features: List[FeatureHandler] = []

    if config_mgr.enabled("greeting"):
        features.append(GreetingFeature(client))
    if config_mgr.enabled("uptime"):
        features.append(UptimeFeature(client, bot_name=bot_name))
    if config_mgr.enabled("botsnack"):
        features.append(BotsnackFeature(client))
    if config_mgr.enabled("help"):
        features.append(HelpFeature(client))
    if config_mgr.enabled("karma"):
        features.append(
            KarmaFeature(
                client,
                directory,
                store,
                max_subject_length=int(config_mgr.section("karma").get("max_subject_length", 34)),
            )
        )
    if config_mgr.enabled("factoids"):
        cfg = config_mgr.section("factoids")
        features.append(
            FactoidFeature(
                client,
                directory,
                store,
                pending=PendingRequestStore(
                    ttl_seconds=float(cfg.get("pending_ttl_seconds", 300)),
                    sweep_interval_seconds=float(cfg.get("sweep_interval_seconds", 600)),
                ),
            )
        )

    for f in features:
        dispatcher.register_feature(f)

    if config_mgr.enabled("character"):
        cfg = config_mgr.section("character")
        dispatcher.set_fallback(
            ConversationFeature(
                client,
                CompletionClient.from_config(cfg),
                system_prompt=f"{cfg.get('system_prompt', '')}\n\n{capabilities_prompt()}",
                history_size=int(cfg.get("history_size", 10)),
            )
        )

    dispatcher.freeze()
    return dispatcher


async def main() -> None:
    """Initialize and run the Zulip bot with all configured features."""
    config_path = os.environ.get("KARMABOT_CONFIG", "config.yaml")
    config_mgr = ConfigManager(config_path)
    config_mgr.load()

    logging.basicConfig(
        level=config_mgr.section("logging").get("level", "INFO"),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting karmabot with config %s", config_path)

    client = ZulipTrioClient.from_env_or_rc()

    bot_user = await client.get_own_user()
    if bot_user:
        logger.info(
            "Bot authenticated as: %s (email: %s, user_id: %s)",
            bot_user.get("full_name"),
            bot_user.get("email"),
            bot_user.get("user_id"),
        )
    else:
        logger.warning("Could not retrieve bot user information")
        bot_user = {}

    dispatcher = build_dispatcher(config_mgr, client, bot_user)
    factoids = dispatcher.feature(FactoidFeature.name)

    async with trio.open_nursery() as nursery:
        if isinstance(factoids, FactoidFeature):
            nursery.start_soon(factoids.run_housekeeping)

        async def event_loop() -> None:
            queue = await client.register(
                event_types=["message"],
                client_gravatar=False,
                apply_markdown=False,
            )
            logger.info("Registered event queue id=%s", queue.get("queue_id"))
            logger.info("Bot is now listening for messages...")

            async for event in client.events(queue):
                logger.debug("Received event: type=%s", event.get("type"))
                # One task per message so slow lookups don't block other channels
                nursery.start_soon(dispatcher.dispatch_event, event)

        nursery.start_soon(event_loop)


def run() -> None:
    trio.run(main)


if __name__ == "__main__":
    run()
