"""Operator-declared blocked periods.

A block is written to the ledger's availability database and mirrored to the
calendar as an opaque event, which is what availability reads. When the
availability database is not configured, the calendar event alone carries
the block.
"""

import secrets
import string
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

from booking_sync.logging import get_logger
from booking_sync.logging.audit import AuditEventType, AuditLogger
from booking_sync.models.blocked_interval import (
    BlockedInterval,
    BlockedIntervalInput,
    BlockStatus,
)
from booking_sync.models.calendar_event import CalendarEvent
from booking_sync.models.errors import BookingSyncError, NotFoundError
from booking_sync.services.event_builder import block_event_body
from booking_sync.storage.calendar_client import CalendarClient
from booking_sync.storage.repository_base import BlockRepository

logger = get_logger(__name__)

BLOCK_ID_PREFIX = "BLK"
BLOCK_SUFFIX_LENGTH = 6
# Calendar search range used to find a block's event without a ledger record
BLOCK_SEARCH_PAST_DAYS = 30
BLOCK_SEARCH_FUTURE_DAYS = 366


def generate_block_id(start_date: date) -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(BLOCK_SUFFIX_LENGTH))
    return f"{BLOCK_ID_PREFIX}-{start_date:%Y%m%d}-{suffix}"


class BlockedIntervalService:
    """Creates and archives blocked periods."""

    def __init__(self, blocks: BlockRepository, calendar: CalendarClient, tz: tzinfo):
        self.blocks = blocks
        self.calendar = calendar
        self.tz = tz

    async def create_block(self, data: BlockedIntervalInput, actor: str = "admin") -> BlockedInterval:
        """
        Declare a blocked period.

        The calendar event is required: a block that availability cannot see
        blocks nothing, so calendar failures propagate.
        """
        block = BlockedInterval(
            block_id=generate_block_id(data.start_date),
            reason=data.reason,
            start_date=data.start_date,
            end_date=data.end_date or data.start_date,
            start_time=data.start_time,
            end_time=data.end_time,
        )

        if self.blocks.configured:
            block = await self.blocks.create(block)
        else:
            logger.warning("block_ledger_not_configured", block_id=block.block_id)

        try:
            event = await self.calendar.insert_event(block_event_body(block, self.tz))
        except BookingSyncError:
            if block.record_id:
                await self.blocks.update(block.model_copy(update={"status": BlockStatus.ARCHIVED}))
                logger.warning("block_record_archived_after_calendar_failure", block_id=block.block_id)
            raise
        block = block.model_copy(update={"event_id": event.event_id})
        if block.record_id:
            block = await self.blocks.update(block)

        logger.info(
            "block_created",
            block_id=block.block_id,
            event_id=block.event_id,
            start_date=block.start_date.isoformat(),
            end_date=block.end_date.isoformat(),
            all_day=block.is_all_day,
        )
        AuditLogger.log_event(
            event_type=AuditEventType.BLOCK_CREATED,
            actor=actor,
            resource_id=block.block_id,
            action="Blocked interval created",
            metadata={
                "start_date": block.start_date.isoformat(),
                "end_date": block.end_date.isoformat(),
                "reason": block.reason,
            },
        )
        return block

    async def _find_block_events(self, block_id: str) -> list[CalendarEvent]:
        today = datetime.combine(datetime.now(self.tz).date(), time(0, 0), tzinfo=self.tz)
        events = await self.calendar.list_events(
            today - timedelta(days=BLOCK_SEARCH_PAST_DAYS),
            today + timedelta(days=BLOCK_SEARCH_FUTURE_DAYS),
            query=block_id,
        )
        return [event for event in events if event.embedded_block_id == block_id]

    async def archive_block(self, block_id: str, actor: str = "admin") -> Optional[BlockedInterval]:
        """
        Archive a block and delete its calendar event.

        Returns the archived record, or None when only calendar events existed.

        Raises:
            NotFoundError: Neither the ledger nor the calendar knows the block
        """
        block = await self.blocks.get(block_id) if self.blocks.configured else None

        if block is not None and block.event_id:
            event_ids = [block.event_id]
        else:
            event_ids = [event.event_id for event in await self._find_block_events(block_id)]

        if block is None and not event_ids:
            raise NotFoundError(f"Block {block_id} not found")

        for event_id in event_ids:
            await self.calendar.delete_event(event_id)

        if block is not None:
            block = await self.blocks.update(
                block.model_copy(update={"status": BlockStatus.ARCHIVED, "event_id": None})
            )

        logger.info("block_archived", block_id=block_id, events_deleted=len(event_ids))
        AuditLogger.log_event(
            event_type=AuditEventType.BLOCK_ARCHIVED,
            actor=actor,
            resource_id=block_id,
            action="Blocked interval archived",
            metadata={"events_deleted": len(event_ids)},
        )
        return block

    async def list_active(self, start: date, end: date) -> list[BlockedInterval]:
        if not self.blocks.configured:
            return []
        return await self.blocks.list_active(start, end)
