"""
Background dispatch of inbound messages.

The webhook must answer Twilio within a few seconds, so it only enqueues the
message here and returns. Workers run the session engine and deliver the
reply through a separate outbound API call.

Every unit of work has its own error boundary: whatever happens, the worker
tries to send the contact *some* reply and never lets an exception escape.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol

import structlog

from src.translator import prompts
from src.translator.config import get_config
from src.translator.errors import TranslatorError
from src.translator.messaging import mask_address
from src.translator.models import Attachment, InboundMessage, ReplyPlan

logger = structlog.get_logger(__name__)


class MessageHandler(Protocol):
    async def handle_message(
        self,
        contact_id: str,
        text: str,
        attachment: Optional[Attachment] = None,
    ) -> ReplyPlan:
        ...


class ReplySender(Protocol):
    async def send(self, to: str, plan: ReplyPlan) -> list[str]:
        ...


class MessageDispatcher:
    """
    Queue + worker pool for inbound messages.

    With `serialize_per_contact` two messages from the same contact are
    processed one after the other (in this process). A worker that pulls a
    message for a contact already being handled parks it behind that contact
    and moves on, so one busy contact never ties up the whole pool.
    """

    def __init__(
        self,
        handler: MessageHandler,
        sender: ReplySender,
        config: Optional[Any] = None,
    ):
        self.config = config or get_config()
        self._handler = handler
        self._sender = sender
        self._queue: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._running = False
        # contact_id -> messages waiting behind the one currently being handled
        self._active_contacts: Dict[str, Deque[InboundMessage]] = {}
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize() + sum(len(q) for q in self._active_contacts.values())

    @property
    def active_contacts(self) -> int:
        return len(self._active_contacts)

    async def start(self) -> None:
        """Start the worker pool."""
        if self._running:
            return

        self._running = True
        for index in range(self.config.dispatcher_workers):
            self._workers.append(asyncio.create_task(self._worker(index)))
        logger.info("Message dispatcher started", workers=len(self._workers))

    async def stop(self, *, drain: bool = True, timeout: float = 10.0) -> None:
        """Stop the workers, optionally letting queued messages finish first."""
        if drain and self._running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Dispatcher drain timed out", pending=self.pending)

        self._running = False
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        logger.info("Message dispatcher stopped", processed=self.processed, failed=self.failed)

    def submit(self, message: InboundMessage) -> None:
        """
        Enqueue a message for processing.

        This is non-blocking and returns immediately.
        """
        self._queue.put_nowait(message)
        logger.debug(
            "Message submitted",
            contact=mask_address(message.contact_id),
            queue_size=self._queue.qsize(),
        )

    async def _worker(self, index: int) -> None:
        """Background worker that processes inbound messages."""
        while True:
            message = await self._queue.get()
            try:
                await self.process(message)
            finally:
                self._queue.task_done()

    async def process(self, message: InboundMessage) -> None:
        """
        Handle one message end to end. Never raises (except cancellation).

        When the contact is already being handled, the message is parked and
        this returns at once; the owning call processes it in arrival order.
        """
        if not self.config.serialize_per_contact:
            await self._process(message)
            return

        contact_id = message.contact_id
        parked = self._active_contacts.get(contact_id)
        if parked is not None:
            parked.append(message)
            logger.debug("Message parked behind active contact", contact=mask_address(contact_id))
            return

        parked = deque()
        self._active_contacts[contact_id] = parked
        try:
            await self._process(message)
            while parked:
                await self._process(parked.popleft())
        finally:
            del self._active_contacts[contact_id]
            if parked:
                logger.warning(
                    "Dropped parked messages on cancellation",
                    contact=mask_address(contact_id),
                    dropped=len(parked),
                )

    async def _process(self, message: InboundMessage) -> None:
        contact = mask_address(message.contact_id)
        is_error_reply = False

        try:
            plan = await self._handler.handle_message(
                message.contact_id,
                message.text,
                message.attachment,
            )
        except asyncio.CancelledError:
            raise
        except TranslatorError as e:
            self.failed += 1
            logger.error(
                "Message processing failed",
                contact=contact,
                error_type=type(e).__name__,
                error=str(e),
            )
            plan = ReplyPlan.text(prompts.generic_error())
            is_error_reply = True
        except Exception as e:
            self.failed += 1
            logger.exception(
                "Unexpected error processing message",
                contact=contact,
                error_type=type(e).__name__,
                error=str(e),
            )
            plan = ReplyPlan.text(prompts.generic_error())
            is_error_reply = True
        else:
            self.processed += 1

        if await self._deliver(message.contact_id, plan) or is_error_reply:
            return

        # The real reply was rejected; one attempt at telling the contact something went wrong.
        await self._deliver(message.contact_id, ReplyPlan.text(prompts.generic_error()))

    async def _deliver(self, contact_id: str, plan: ReplyPlan) -> bool:
        try:
            await self._sender.send(contact_id, plan)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Reply delivery failed",
                contact=mask_address(contact_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        return True
