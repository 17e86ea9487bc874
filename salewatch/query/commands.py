"""
Chat command interpreter.

Maps short text commands (``!today``, ``week``, ``chart 10432375``) to
query handlers with plain regex matching. Handler failures are logged and
answered with a generic acknowledgment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from salewatch.query.service import QueryService

logger = structlog.get_logger("query.commands")

GENERIC_FAILURE = "Something went wrong, try again later."

Handler = Callable[[Dict[str, Any]], Awaitable[str]]


@dataclass
class CommandDefinition:
    """Definition of a recognized command."""

    name: str
    patterns: List[str]
    handler: Handler
    description: str
    param_extractors: Dict[str, Callable[[re.Match], Any]] = field(default_factory=dict)


@dataclass
class CommandReply:
    command: str
    text: str
    ok: bool = True


def extract_group_id(match: re.Match) -> Optional[int]:
    value = match.groupdict().get("group")
    return int(value) if value else None


class CommandInterpreter:
    """Regex-based routing of chat messages to handlers."""

    def __init__(self) -> None:
        self.commands: Dict[str, CommandDefinition] = {}
        self._compiled_patterns: Dict[str, List[re.Pattern]] = {}

    def register_command(self, command: CommandDefinition) -> None:
        self.commands[command.name] = command
        self._compiled_patterns[command.name] = [
            re.compile(pattern, re.IGNORECASE) for pattern in command.patterns
        ]

    def interpret(self, message: str) -> tuple[CommandDefinition, Dict[str, Any]]:
        """Best matching command and extracted params, falling back to help."""
        message = message.strip()
        for name, command in self.commands.items():
            for pattern in self._compiled_patterns[name]:
                match = pattern.fullmatch(message)
                if not match:
                    continue
                params = {
                    param: extractor(match)
                    for param, extractor in command.param_extractors.items()
                }
                logger.debug("command.matched", command=name, params=params)
                return command, params

        logger.info("command.no_match", message=message[:100])
        if "help" not in self.commands:
            raise ValueError("Help command must be registered")
        return self.commands["help"], {"reason": "unrecognized"}

    async def handle(self, message: str) -> CommandReply:
        command, params = self.interpret(message)
        try:
            text = await command.handler(params)
        except Exception as exc:
            logger.error(
                "command.failed",
                command=command.name,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return CommandReply(command=command.name, text=GENERIC_FAILURE, ok=False)
        return CommandReply(command=command.name, text=text)

    def get_help_text(self) -> str:
        lines = ["Available commands:"]
        for name, command in self.commands.items():
            if name == "help":
                continue
            lines.append(f"  !{name} - {command.description}")
        return "\n".join(lines)


class QueryCommands:
    """Handlers backed by a QueryService."""

    def __init__(self, service: QueryService):
        self.service = service

    async def _period(self, period: str, label: str, params: Dict[str, Any]) -> str:
        group_id = params.get("group_id")
        total = await self.service.total_for(period, group_id)
        scope = f" (group {group_id})" if group_id else ""
        return f"{label}{scope}: {total} Robux"

    async def today(self, params: Dict[str, Any]) -> str:
        return await self._period("today", "Today", params)

    async def week(self, params: Dict[str, Any]) -> str:
        return await self._period("week", "This week", params)

    async def month(self, params: Dict[str, Any]) -> str:
        return await self._period("month", "This month", params)

    async def chart(self, params: Dict[str, Any]) -> str:
        group_id = params.get("group_id")
        series = await self.service.chart(group_id=group_id)
        peak = max((point["total"] for point in series), default=0)
        header = "Last 7 days" + (f" (group {group_id})" if group_id else "")
        lines = [header]
        for point in series:
            bar = "#" * (round(point["total"] / peak * 20) if peak else 0)
            lines.append(f"{point['date']} {point['total']:>6} {bar}")
        return "\n".join(lines)

    async def forecast(self, params: Dict[str, Any]) -> str:
        result = await self.service.forecast()
        if result is None:
            return "Not enough data for a forecast yet (needs 7 days of sales)."
        return (
            f"Next 24h forecast: ~{result.predicted_next} Robux "
            f"(confidence: {result.confidence}, trend: {result.trend:+.0%})"
        )


def build_interpreter(service: QueryService) -> CommandInterpreter:
    handlers = QueryCommands(service)
    interpreter = CommandInterpreter()
    group_suffix = r"(?:\s+(?P<group>\d+))?"

    interpreter.register_command(
        CommandDefinition(
            name="today",
            patterns=[rf"!?today{group_suffix}", rf"!?daily{group_suffix}"],
            handler=handlers.today,
            description="Sales since midnight UTC",
            param_extractors={"group_id": extract_group_id},
        )
    )
    interpreter.register_command(
        CommandDefinition(
            name="week",
            patterns=[rf"!?week{group_suffix}", rf"!?weekly{group_suffix}"],
            handler=handlers.week,
            description="Sales since Monday",
            param_extractors={"group_id": extract_group_id},
        )
    )
    interpreter.register_command(
        CommandDefinition(
            name="month",
            patterns=[rf"!?month{group_suffix}", rf"!?monthly{group_suffix}"],
            handler=handlers.month,
            description="Sales since the first of the month",
            param_extractors={"group_id": extract_group_id},
        )
    )
    interpreter.register_command(
        CommandDefinition(
            name="chart",
            patterns=[rf"!?chart{group_suffix}", rf"!?graph{group_suffix}"],
            handler=handlers.chart,
            description="Daily totals for the last 7 days",
            param_extractors={"group_id": extract_group_id},
        )
    )
    interpreter.register_command(
        CommandDefinition(
            name="forecast",
            patterns=[r"!?forecast", r"!?predict(?:ion)?"],
            handler=handlers.forecast,
            description="Estimated sales for the next 24 hours",
        )
    )

    async def help_handler(params: Dict[str, Any]) -> str:
        return interpreter.get_help_text()

    interpreter.register_command(
        CommandDefinition(
            name="help",
            patterns=[r"!?help", r"!?commands"],
            handler=help_handler,
            description="List commands",
        )
    )
    return interpreter
