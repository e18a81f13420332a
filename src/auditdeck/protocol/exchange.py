"""Command/response exchange over a text transport.

One exchange sends a single command line and then pumps the transport
through a line assembler and a grammar until the module prints a
completion marker or the exchange's wall-clock deadline passes.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from auditdeck.core.errors import TransportError
from auditdeck.core.models import ExchangeSummary
from auditdeck.protocol.commands import Command
from auditdeck.protocol.constants import COMMAND_SETTLE, READ_TIMEOUT, ExchangeOutcome, ExchangeState
from auditdeck.protocol.parsers import CompletionMarker, LineClassifier
from auditdeck.serial.connection import Transport
from auditdeck.serial.lines import LineAssembler

logger = logging.getLogger(__name__)

_TERMINAL_STATES = {
    ExchangeOutcome.COMPLETE: ExchangeState.COMPLETE,
    ExchangeOutcome.TIMED_OUT: ExchangeState.TIMED_OUT,
    ExchangeOutcome.STOPPED: ExchangeState.STOPPED,
    ExchangeOutcome.TRANSPORT_ERROR: ExchangeState.FAILED,
}


@dataclass
class ExchangeResult:
    """Everything an exchange collected, complete or not."""

    command: str
    outcome: ExchangeOutcome
    items: list[Any] = field(default_factory=list)
    lines: int = 0
    unmatched: int = 0
    elapsed: float = 0.0
    error: str | None = None

    @property
    def incomplete(self) -> bool:
        """True when the results may be missing data (deadline, stop or link fault)."""
        return self.outcome is not ExchangeOutcome.COMPLETE

    def summary(self) -> ExchangeSummary:
        return ExchangeSummary(
            command=self.command,
            outcome=self.outcome,
            items=len(self.items),
            elapsed=round(self.elapsed, 3),
            incomplete=self.incomplete,
            error=self.error,
        )


class Exchange:
    """A single send-command / await-response cycle.

    Partial results survive every ending: a module that prints half a scan
    and goes silent still yields that half, flagged as incomplete.
    """

    def __init__(
        self,
        transport: Transport,
        command: Command,
        grammar: LineClassifier,
        on_result: Callable[[Any], None] | None = None,
        deadline: float = 5.0,
        expects_marker: bool = False,
        read_timeout: float = READ_TIMEOUT,
        assembler: LineAssembler | None = None,
        stop_event: asyncio.Event | None = None,
    ):
        """
        Initialize an exchange.

        Args:
            transport: Link to the remote module.
            command: Command line to send.
            grammar: Parsers tried against each response line.
            on_result: Accumulation callback invoked for every parsed entity.
            deadline: Wall-clock bound on the whole response wait, in seconds.
            expects_marker: If True, only a completion marker ends the
                exchange cleanly and deadline expiry means TIMED_OUT. If
                False the response has no terminator and running out the
                deadline is the normal end.
            read_timeout: Per-read wait on the transport.
            assembler: Line assembler to use (a fresh one if omitted).
            stop_event: Checked between reads; when set the exchange ends
                early with STOPPED. A read in progress is never interrupted.
        """
        self.command = command
        self.grammar = grammar
        self.deadline = deadline
        self.expects_marker = expects_marker
        self.read_timeout = read_timeout
        self.state = ExchangeState.SEND_COMMAND

        self._transport = transport
        self._on_result = on_result
        self._assembler = assembler or LineAssembler()
        self._stop_event = stop_event

    async def run(self) -> ExchangeResult:
        """Send the command and collect the response.

        Returns:
            ExchangeResult with whatever was parsed. Transport faults are
            reported in the result, never raised.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = ExchangeResult(command=self.command.text, outcome=ExchangeOutcome.TIMED_OUT)

        try:
            self._transport.flush_input()
            self._assembler.reset()
            await self._transport.write(self.command.to_bytes())
            logger.info("Sent command: %s", self.command)

            self.state = ExchangeState.AWAIT_RESPONSE
            result.outcome = await self._await_response(result, started + self.deadline)

        except TransportError as e:
            logger.warning("Exchange '%s' aborted by transport fault: %s", self.command, e)
            result.outcome = ExchangeOutcome.TRANSPORT_ERROR
            result.error = str(e)

        result.elapsed = loop.time() - started
        self.state = _TERMINAL_STATES[result.outcome]

        if result.outcome is ExchangeOutcome.TIMED_OUT:
            logger.warning(
                "Exchange '%s' timed out after %.1fs with %d partial results",
                self.command,
                result.elapsed,
                len(result.items),
            )
        else:
            logger.debug(
                "Exchange '%s' %s: %d results, %d lines (%d unmatched) in %.2fs",
                self.command,
                result.outcome.value,
                len(result.items),
                result.lines,
                result.unmatched,
                result.elapsed,
            )
        return result

    async def _await_response(self, result: ExchangeResult, deadline: float) -> ExchangeOutcome:
        loop = asyncio.get_running_loop()

        while True:
            if self._stop_event is not None and self._stop_event.is_set():
                return ExchangeOutcome.STOPPED

            remaining = deadline - loop.time()
            if remaining <= 0:
                return ExchangeOutcome.TIMED_OUT if self.expects_marker else ExchangeOutcome.COMPLETE

            data = await self._transport.read(min(self.read_timeout, remaining))
            if not data:
                continue

            for line in self._assembler.feed(data):
                result.lines += 1
                parsed = self.grammar.classify(line)

                if parsed is None:
                    result.unmatched += 1
                    logger.debug("Unmatched line: %r", line)
                    continue

                if isinstance(parsed, CompletionMarker):
                    logger.info("Completion marker received for '%s'", self.command)
                    return ExchangeOutcome.COMPLETE

                result.items.append(parsed)
                if self._on_result is not None:
                    self._on_result(parsed)


async def send_command(transport: Transport, command: Command, settle: float = COMMAND_SETTLE) -> None:
    """Send a command that has no response worth reading, then let the module settle.

    Raises:
        TransportError: If the write fails.
    """
    await transport.write(command.to_bytes())
    logger.info("Sent command: %s", command)
    if settle > 0:
        await asyncio.sleep(settle)
