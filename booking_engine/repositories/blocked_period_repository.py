import logging
from datetime import date

from sqlalchemy.orm import Session

from booking_engine.core.exceptions import FormatError, NotFoundError
from booking_engine.database import Deadline, apply_deadline, atomic, storage_call
from booking_engine.models.blocked_period import BlockedPeriod
from booking_engine.scheduling.time_utils import time_of, to_minutes

logger = logging.getLogger(__name__)


class BlockedPeriodRepository:
    """Ad-hoc blocked intervals. Overlapping blocks are allowed."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, block_id: int, deadline: Deadline | None = None) -> BlockedPeriod:
        with storage_call('load blocked period'):
            apply_deadline(self.db, deadline, 'load blocked period')
            blocked_period = self.db.get(BlockedPeriod, block_id)

        if blocked_period is None:
            raise NotFoundError('Blocked period not found.', details={'block_id': block_id})
        return blocked_period

    def list(self, instructor_id: int, block_date: date, deadline: Deadline | None = None) -> list[BlockedPeriod]:
        with storage_call('load blocked periods'):
            apply_deadline(self.db, deadline, 'load blocked periods')
            return self.db.query(BlockedPeriod).filter(
                BlockedPeriod.instructor_id == instructor_id,
                BlockedPeriod.block_date == block_date,
            ).order_by(BlockedPeriod.start_time.asc(), BlockedPeriod.id.asc()).all()

    def create(
        self,
        *,
        instructor_id: int,
        block_date: date,
        start_time: str,
        end_time: str,
        reason: str | None = None,
        deadline: Deadline | None = None,
    ) -> BlockedPeriod:
        start_minute = to_minutes(start_time)
        end_minute = to_minutes(end_time)
        if start_minute >= end_minute:
            raise FormatError(
                'start_time must be before end_time.',
                details={'start_time': start_time, 'end_time': end_time},
            )

        blocked_period = BlockedPeriod(
            instructor_id=instructor_id,
            block_date=block_date,
            start_time=time_of(start_minute),
            end_time=time_of(end_minute),
            reason=(reason or '').strip() or None,
        )
        with atomic(self.db, deadline, 'create blocked period'):
            self.db.add(blocked_period)
        self.db.refresh(blocked_period)

        logger.info(
            'Blocked %s %s-%s for instructor %s',
            block_date.isoformat(),
            start_time,
            end_time,
            instructor_id,
        )
        return blocked_period

    def delete(self, block_id: int, deadline: Deadline | None = None) -> None:
        with atomic(self.db, deadline, 'delete blocked period'):
            blocked_period = self.db.get(BlockedPeriod, block_id)
            if blocked_period is None:
                raise NotFoundError('Blocked period not found.', details={'block_id': block_id})
            self.db.delete(blocked_period)
