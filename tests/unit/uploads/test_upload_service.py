import hashlib
import io

import pytest
from fastapi import UploadFile

from src.filedock.files.file_models import FileRecord
from src.filedock.uploads.upload_errors import (
    FolderNotFoundError,
    InvalidChunkError,
    InvalidUploadPathError,
    UploadConflictError,
)
from src.filedock.uploads.upload_models import ChunkUpload, UploadStatus
from src.filedock.uploads.upload_service import UploadService

PARTS = [b"alpha-" * 100, b"bravo-" * 100, b"charlie"]


class RecordingEnrichment:
    def __init__(self) -> None:
        self.files: list[FileRecord] = []

    async def enrich(self, file: FileRecord) -> FileRecord:
        self.files.append(file)
        return file


@pytest.fixture
def service(storage, file_repo, folder_repo) -> UploadService:
    return UploadService(paths=storage, file_repo=file_repo, folder_repo=folder_repo, read_chunk_bytes=64)


def _request(upload_id: str, index: int, *, name: str = "movie.bin", path: str | None = None, **kwargs) -> ChunkUpload:
    return ChunkUpload(
        upload_id=upload_id,
        chunk_index=index,
        total_chunks=kwargs.pop("total", len(PARTS)),
        file_name=name,
        path=path,
        **kwargs,
    )


def _body(data: bytes) -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename="blob")


async def _upload(service: UploadService, upload_id: str, order: list[int], **kwargs):
    results = []
    for index in order:
        results.append(await service.accept_chunk(_request(upload_id, index, **kwargs), _body(PARTS[index])))
    return results


@pytest.mark.asyncio
async def test_out_of_order_chunks_assemble_identically(service: UploadService, storage) -> None:
    forward = await _upload(service, "up-1", [0, 1, 2], path="a")
    shuffled = await _upload(service, "up-2", [2, 0, 1], path="b")

    assert [r.status for r in shuffled] == [UploadStatus.ACCEPTED, UploadStatus.ACCEPTED, UploadStatus.COMPLETED]
    first, second = forward[-1].file, shuffled[-1].file
    expected = b"".join(PARTS)
    assert storage.resolve(first.path).read_bytes() == expected
    assert storage.resolve(second.path).read_bytes() == expected
    assert first.sha256 == second.sha256 == hashlib.sha256(expected).hexdigest()
    assert first.size == second.size == len(expected)
    assert not storage.resolve(".chunks/up-2").exists()


@pytest.mark.asyncio
async def test_incomplete_upload_reports_received_chunks(service: UploadService, storage) -> None:
    result = await service.accept_chunk(_request("up-1", 2), _body(PARTS[2]))

    assert result.status is UploadStatus.ACCEPTED
    assert result.received_chunks == 1
    assert result.file is None
    assert (storage.resolve(".chunks/up-1") / "000002").read_bytes() == PARTS[2]


@pytest.mark.asyncio
async def test_duplicate_chunk_is_overwritten_not_double_counted(service: UploadService) -> None:
    await service.accept_chunk(_request("up-1", 0), _body(PARTS[0]))
    again = await service.accept_chunk(_request("up-1", 0), _body(PARTS[0]))

    assert again.status is UploadStatus.ACCEPTED
    assert again.received_chunks == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(("index", "total"), [(-1, 3), (3, 3), (0, 0)])
async def test_chunk_index_out_of_range_is_rejected(service: UploadService, storage, index: int, total: int) -> None:
    with pytest.raises(InvalidChunkError):
        await service.accept_chunk(_request("up-1", index, total=total), _body(b"x"))

    assert not storage.resolve(".chunks/up-1").exists()


@pytest.mark.asyncio
async def test_existing_target_conflicts_before_writing(service: UploadService, storage) -> None:
    await _upload(service, "up-1", [0, 1, 2], path="media")

    with pytest.raises(UploadConflictError):
        await service.accept_chunk(_request("up-2", 0, path="media"), _body(PARTS[0]))
    assert not storage.resolve(".chunks/up-2").exists()


@pytest.mark.asyncio
async def test_conflict_by_folder_and_name(service: UploadService, folder_repo, file_repo) -> None:
    folder = folder_repo.create_folder(name="photos", path="photos")
    file_repo.create_file(name="movie.bin", path="elsewhere/movie.bin", folder_id=folder.id, size=1, mime_type="x/y")

    with pytest.raises(UploadConflictError):
        await service.accept_chunk(_request("up-1", 0, folder_id=folder.id), _body(PARTS[0]))


@pytest.mark.asyncio
async def test_folder_id_places_file_in_folder_path(service: UploadService, folder_repo) -> None:
    folder = folder_repo.create_folder(name="photos", path="library/photos")

    results = await _upload(service, "up-1", [0, 1, 2], folder_id=folder.id)

    record = results[-1].file
    assert record.path == "library/photos/movie.bin"
    assert record.folder_id == folder.id


@pytest.mark.asyncio
async def test_unknown_folder_and_unsafe_path(service: UploadService) -> None:
    with pytest.raises(FolderNotFoundError):
        await service.accept_chunk(_request("up-1", 0, folder_id="nope"), _body(b"x"))
    with pytest.raises(InvalidUploadPathError):
        await service.accept_chunk(_request("up-1", 0, path="../escape"), _body(b"x"))
    with pytest.raises(InvalidUploadPathError):
        await service.accept_chunk(_request("../up", 0), _body(b"x"))


@pytest.mark.asyncio
async def test_mime_type_is_guessed_and_enrichment_runs(storage, file_repo, folder_repo) -> None:
    enrichment = RecordingEnrichment()
    service = UploadService(paths=storage, file_repo=file_repo, folder_repo=folder_repo, enrichment=enrichment)

    result = await service.accept_chunk(_request("up-1", 0, name="clip.mp4", total=1), _body(b"data"))

    assert result.file.mime_type == "video/mp4"
    assert [f.id for f in enrichment.files] == [result.file.id]
    assert file_repo.get_file(result.file.id).sha256 == hashlib.sha256(b"data").hexdigest()


@pytest.mark.asyncio
async def test_completed_upload_releases_its_lock(service: UploadService) -> None:
    await _upload(service, "up-1", [1, 0], path="a")
    assert "up-1" in service._locks

    await _upload(service, "up-1", [2], path="a")

    assert "up-1" not in service._locks


@pytest.mark.asyncio
async def test_rejected_upload_discards_written_chunks(service: UploadService, storage) -> None:
    await service.accept_chunk(_request("up-1", 0, path="media"), _body(PARTS[0]))
    await _upload(service, "up-2", [0, 1, 2], path="media")

    with pytest.raises(UploadConflictError):
        await service.accept_chunk(_request("up-1", 1, path="media"), _body(PARTS[1]))

    assert not storage.resolve(".chunks/up-1").exists()
    assert "up-1" not in service._locks
