from typing import Any, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src import settings
from src.app.stats.constants import INTEGER_MEASURES
from src.app.stats.domains import MessageStatsUpload, RowPlacement
from src.app.stats.exceptions import StorageError
from src.app.stats.models import MessageStats
from src.common.nanoid import NanoIdType

# Everything but the global hash is overwritten on re-upload, ownership moves to the last uploader
MESSAGE_STATS_UPSERT_COLUMNS: tuple[str, ...] = (
    'user_id',
    'application',
    'role',
    'date',
    'project_hash',
    'conversation_hash',
    'local_hash',
    'uuid',
    'session_name',
    'model',
    'file_types',
    'cost',
) + INTEGER_MEASURES


class RawStatIngestor:
    """
    Writes uploaded messages into `message_stats`, keyed by global hash.

    Every chunk is its own transaction. A failing chunk aborts the rest of
    the batch while earlier chunks stay committed, uploads are retried as a
    whole and re-ingesting is harmless.
    """

    def __init__(self, session: Session, chunk_size: int | None = None) -> None:
        self.session = session
        self.chunk_size = chunk_size or settings.STATS_UPSERT_CHUNK_SIZE
        # Buckets the overwritten rows used to count towards
        self.previous_placements: list[RowPlacement] = []

    def ingest(self, user_id: NanoIdType, rows: Sequence[MessageStatsUpload]) -> int:
        written = 0
        for chunk in MessageStats._chunks(self._dedupe(rows), self.chunk_size):
            mappings = [row.to_create(user_id=user_id).to_dict() for row in chunk]
            try:
                self.previous_placements.extend(self._find_placements([m['global_hash'] for m in mappings]))
                statement = MessageStats.upsert_statement(
                    mappings,
                    conflict_columns=('global_hash',),
                    update_columns=MESSAGE_STATS_UPSERT_COLUMNS,
                    session=self.session,
                )
                self.session.execute(statement)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                raise StorageError(
                    context={'user_id': user_id, 'written': written, 'chunk_size': len(mappings), 'error': str(e)}
                ) from e

            written += len(mappings)
            logger.debug('message stats chunk written', user_id=user_id, rows=len(mappings))

        return written

    def _find_placements(self, global_hashes: list[str]) -> list[RowPlacement]:
        """
        Matches rows of any owner, a hash uploaded by another user moves over
        """
        query = select(MessageStats.application, MessageStats.date, MessageStats.user_id).where(
            MessageStats.global_hash.in_(global_hashes),
        )
        return [
            RowPlacement(application=application, date=date, user_id=owner_id)
            for application, date, owner_id in self.session.execute(query)
        ]

    @staticmethod
    def _dedupe(rows: Sequence[MessageStatsUpload]) -> list[MessageStatsUpload]:
        """
        A statement may only touch a conflicting row once, the last copy of a hash wins
        """
        by_hash: dict[str, Any] = {}
        for row in rows:
            by_hash.pop(row.global_hash, None)
            by_hash[row.global_hash] = row
        return list(by_hash.values())
