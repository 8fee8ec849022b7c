"""Persistence layer for extracted stream tracks and subtitles."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.db_models import SubtitleModel, VideoTrackModel
from ..exceptions import NotFoundError
from ..media.media_models import SubtitleRecord, TrackRecord


class MediaTrackRepository:
    """Stream tracks and subtitles are stored as one set per file."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def replace_tracks(self, file_id: str, tracks: Iterable[TrackRecord]) -> None:
        """Delete existing tracks for ``file_id`` and insert ``tracks`` in one transaction."""
        with self._session_factory() as session:
            session.execute(delete(VideoTrackModel).where(VideoTrackModel.file_id == file_id))
            session.add_all(
                VideoTrackModel(
                    file_id=file_id,
                    track_type=track.track_type,
                    codec=track.codec,
                    language=track.language,
                    stream_index=track.index,
                    title=track.title,
                )
                for track in tracks
            )
            session.commit()

    def list_tracks(self, file_id: str) -> list[TrackRecord]:
        with self._session_factory() as session:
            rows = session.execute(
                select(VideoTrackModel)
                .where(VideoTrackModel.file_id == file_id)
                .order_by(VideoTrackModel.stream_index)
            ).scalars()
            return [
                TrackRecord(
                    track_type=row.track_type,
                    codec=row.codec,
                    index=row.stream_index,
                    language=row.language,
                    title=row.title,
                )
                for row in rows
            ]

    def clear_subtitles(self, file_id: str) -> None:
        with self._session_factory() as session:
            session.execute(delete(SubtitleModel).where(SubtitleModel.file_id == file_id))
            session.commit()

    def add_subtitle(self, file_id: str, subtitle: SubtitleRecord) -> SubtitleRecord:
        model = SubtitleModel(
            file_id=file_id,
            language=subtitle.language,
            path=subtitle.path,
            format=subtitle.format,
            title=subtitle.title,
        )
        with self._session_factory() as session:
            session.add(model)
            session.commit()
            return self._subtitle_to_domain(model)

    def list_subtitles(self, file_id: str) -> list[SubtitleRecord]:
        with self._session_factory() as session:
            rows = session.execute(
                select(SubtitleModel).where(SubtitleModel.file_id == file_id).order_by(SubtitleModel.id)
            ).scalars()
            return [self._subtitle_to_domain(row) for row in rows]

    def get_subtitle(self, file_id: str, subtitle_id: int) -> SubtitleRecord:
        with self._session_factory() as session:
            model = session.get(SubtitleModel, subtitle_id)
            if model is None or model.file_id != file_id:
                raise NotFoundError(f"Subtitle '{subtitle_id}' not found for file '{file_id}'")
            return self._subtitle_to_domain(model)

    @staticmethod
    def _subtitle_to_domain(model: SubtitleModel) -> SubtitleRecord:
        return SubtitleRecord(
            id=model.id,
            language=model.language,
            path=model.path,
            format=model.format,
            title=model.title,
        )
