"""Adapter that serves extraction requests from an async extract() callable."""

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Extractor = Callable[[str], Awaitable[Any]]
EventHandler = Callable[[dict], Any]


class ExtractionTransport:
    """
    Runs each submitted request through `extract(instructions)` and reports the
    result as a completion or error event carrying the request's metadata.

    extract() may return a diff dict, raw model text, or an Exception instance
    to signal failure. Superseded calls are left to finish; the coordinator
    discards their results.
    """

    def __init__(self, extract: Extractor, on_completion: EventHandler, on_error: EventHandler):
        self.extract = extract
        self.on_completion = on_completion
        self.on_error = on_error
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, request: dict) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, request: dict):
        body = request.get("response", {})
        metadata = dict(body.get("metadata", {}))
        response_id = f"resp_{uuid.uuid4().hex[:16]}"

        try:
            result = await self.extract(body.get("instructions", ""))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result = e

        if isinstance(result, BaseException):
            logger.warning(f"Extraction {metadata.get('correlationId')} failed: {result}")
            self._deliver(self.on_error, {
                "type": "response.error",
                "response": {"id": response_id, "metadata": metadata},
                "error": {"message": str(result)},
            })
            return

        text = result if isinstance(result, str) else json.dumps(result)
        self._deliver(self.on_completion, {
            "id": response_id,
            "status": "completed",
            "metadata": metadata,
            "output": [{"type": "message", "content": [{"type": "text", "text": text}]}],
        })

    def _deliver(self, handler: EventHandler, event: dict):
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Event handler failed: {e}", exc_info=True)

    async def aclose(self):
        """Cancel outstanding extraction calls."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
