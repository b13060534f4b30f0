"""Help feature for the karma bot.

The command catalogue below is the single description of what the bot can
do. It backs ``help``/``help <section>`` replies and the capabilities part
of the conversational system prompt.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from core.client import ZulipTrioClient
from core.dispatcher import FeatureHandler
from core.models import InboundEvent
from core.registry import PatternKind, Regex

HELP_RE = re.compile(r"^(?:help|commands|plugins)(?:\s+(?P<section>\w+))?$", re.IGNORECASE)


@dataclass(frozen=True)
class Command:
    pattern: str
    description: str


@dataclass(frozen=True)
class HelpSection:
    title: str
    description: str
    commands: Tuple[Command, ...]


HELP_SECTIONS: Dict[str, HelpSection] = {
    "botsnack": HelpSection(
        "Botsnack",
        "Give the bot a treat!",
        (
            Command("botsnack", "Give the bot a snack"),
            Command("@bot botsnack", "Give the bot a snack (with mention)"),
        ),
    ),
    "factoids": HelpSection(
        "Factoids",
        "Store and retrieve custom responses",
        (
            Command("X?", "Query a factoid"),
            Command("@bot X is Y", "Set a factoid"),
            Command("@bot X is <reply>Y", "Set a factoid that replies with just Y"),
            Command("@bot forget X", "Delete a factoid"),
            Command("!factoid: list", "List all factoids"),
        ),
    ),
    "karma": HelpSection(
        "Karma System",
        "Track and manage karma points",
        (
            Command("@user++", "Give karma to user"),
            Command("@user--", "Take karma from user"),
            Command("thing++", "Give karma to thing"),
            Command("thing--", "Take karma from thing"),
            Command("karma @user", "Query user's karma"),
            Command("karma thing", "Query thing's karma"),
        ),
    ),
    "greetings": HelpSection(
        "Greetings",
        "Responds to various greeting patterns",
        (
            Command("hello!", "Say hello"),
            Command("hey!", "Say hey"),
            Command("hi!", "Say hi"),
            Command(":wave:", "Wave emoji"),
        ),
    ),
    "uptime": HelpSection(
        "Uptime",
        "Bot status information",
        (
            Command("uptime", "Show bot uptime"),
            Command("identify yourself", "Show bot info"),
            Command("who are you", "Show bot identity"),
        ),
    ),
}


def format_section_help(name: str) -> Optional[str]:
    section = HELP_SECTIONS.get(name)
    if section is None:
        return None
    lines = [f"**{section.title}**", section.description, "", "**Commands:**"]
    lines.extend(f"* `{cmd.pattern}` - {cmd.description}" for cmd in section.commands)
    return "\n".join(lines)


def format_full_help() -> str:
    lines = ["**Available commands:**", ""]
    for section in HELP_SECTIONS.values():
        lines.append(f"**{section.title}**: {section.description}")
        lines.extend(f"* `{cmd.pattern}` - {cmd.description}" for cmd in section.commands[:2])
        lines.append("")
    lines.append(
        "For detailed help on one section, try `@bot help <section>` (e.g. `@bot help karma`)"
    )
    return "\n".join(lines)


def capabilities_prompt() -> str:
    """Describe the bot's commands for the conversational system prompt."""
    blocks = []
    for name, section in HELP_SECTIONS.items():
        examples = "\n".join(f"- {cmd.pattern}: {cmd.description}" for cmd in section.commands)
        blocks.append(f"{name}:\n{section.description}\nExamples:\n{examples}")
    return (
        "Available bot capabilities:\n\n"
        + "\n\n".join(blocks)
        + "\n\nWhen responding to users, you can reference and explain these capabilities "
        "when relevant. Use the exact command syntax from the examples when suggesting commands."
    )


class HelpFeature(FeatureHandler):
    """
    Answers ``help``, ``commands`` and ``help <section>``.
    """

    name = "help"

    def __init__(self, client: ZulipTrioClient) -> None:
        self.client = client

    def patterns(self) -> List[Tuple[PatternKind, int]]:
        return [(Regex(HELP_RE), 10)]

    async def respond(self, event: InboundEvent, text: str) -> None:
        match = HELP_RE.match(text)
        if not match:
            return
        section = (match.group("section") or "").lower()
        if not section:
            await self.client.send_reply(event, format_full_help())
            return
        reply = format_section_help(section) or (
            f'Section "{section}" not found. Try one of: {", ".join(HELP_SECTIONS)}'
        )
        await self.client.send_reply(event, reply)
