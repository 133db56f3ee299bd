"""Long-lived line-delimited JSON server.

The server amortizes interpreter and process startup across many requests.
It reads one JSON request per line and writes one JSON response per line.
Requests are serviced strictly one at a time in read order: the next line
is not read until the previous response has been written.

State machine::

    Ready --line--> Dispatching --CONTINUE--> Ready
                                --TERMINATE--> Terminated

Each handler returns a LoopControl telling the read loop whether to keep
going; only ``shutdown`` terminates it.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Callable
from enum import Enum

from pydantic import BaseModel
from typing_extensions import assert_never

from beacon.common.exceptions import (
    RequestParseException,
    UnknownActionException,
)
from beacon.data_types import (
    AnalyzeRequest,
    BatchRequest,
    ErrorResponse,
    PingRequest,
    PongResponse,
    ProtocolRequest,
    ReadyResponse,
    ShutdownRequest,
    ShutdownResponse,
    parse_request,
)
from beacon.driver.runner import AuditRunner

logger = logging.getLogger(__name__)


class LoopControl(Enum):
    """What the read loop does after a request has been handled."""

    CONTINUE = "continue"
    TERMINATE = "terminate"


async def stdin_lines() -> AsyncIterator[str]:
    """Yield lines from standard input until end of stream.

    Reads happen in a worker thread so the event loop is free while the
    server waits for the next request. Works for pipes and regular files.
    """
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        yield line


class PersistentServer:
    """Dispatches line-delimited requests to the audit runner.

    Args:
        runner: Executes analyze and batch requests.
        emit: Writes one response model as one output line.

    Example::

        server = PersistentServer(runner, emit=write_json_line)
        await server.serve(stdin_lines())
    """

    def __init__(
        self,
        runner: AuditRunner,
        emit: Callable[[BaseModel], None],
    ) -> None:
        self.runner = runner
        self.emit = emit
        self.requests_handled = 0

    async def serve(self, lines: AsyncIterator[str]) -> None:
        """Emit the ready signal, then serve lines until shutdown or EOF."""
        logger.info("Starting persistent mode...")
        self.emit(ReadyResponse())
        logger.info("Ready for requests")

        async for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            control = await self.handle_line(line)
            self.requests_handled += 1
            if control is LoopControl.TERMINATE:
                return

        logger.info("Input closed, exiting persistent mode")

    async def handle_line(self, line: str) -> LoopControl:
        """Parse and dispatch one input line, emitting exactly one response."""
        try:
            request = parse_request(line)
        except (RequestParseException, UnknownActionException) as e:
            logger.error(f"Failed to parse request: {e.message}")
            self.emit(ErrorResponse(error=e.message))
            return LoopControl.CONTINUE
        return await self.dispatch(request)

    async def dispatch(self, request: ProtocolRequest) -> LoopControl:
        """Run the handler for one validated request."""
        match request:
            case PingRequest():
                self.emit(PongResponse())
                return LoopControl.CONTINUE
            case AnalyzeRequest(url=url):
                logger.info(f"Analyzing: {url}")
                self.emit(await self.runner.run_single(url))
                return LoopControl.CONTINUE
            case BatchRequest(urls=urls):
                logger.info(f"Batch analyzing {len(urls)} URLs")
                self.emit(await self.runner.run_batch(urls))
                return LoopControl.CONTINUE
            case ShutdownRequest():
                logger.info("Shutdown requested")
                self.emit(ShutdownResponse())
                return LoopControl.TERMINATE
            case _:
                assert_never(request)
