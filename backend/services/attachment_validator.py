import os
from dataclasses import dataclass
from typing import BinaryIO, Iterable, List

from backend.utils.errors import FileTooLarge, InvalidMimeType, TooManyAttachments

PDF_MIMETYPE = "application/pdf"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_COUNT = 3


@dataclass
class UploadCandidate:
    """A file from the request that has not been written anywhere yet."""

    original_name: str
    mimetype: str
    size: int
    stream: BinaryIO

    @classmethod
    def from_file_storage(cls, storage):
        stream = storage.stream
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        return cls(
            original_name=storage.filename or "",
            mimetype=(storage.mimetype or "").lower(),
            size=size,
            stream=stream,
        )


def collect_uploads(files, field_names=("documents", "documents[]")) -> List[UploadCandidate]:
    """Gather file parts from a werkzeug MultiDict, skipping empty inputs."""
    candidates = []
    for name in field_names:
        for storage in files.getlist(name):
            if not storage or not storage.filename:
                continue
            candidates.append(UploadCandidate.from_file_storage(storage))
    return candidates


def validate_uploads(
    candidates: Iterable[UploadCandidate],
    retained_count: int = 0,
    *,
    max_bytes: int = DEFAULT_MAX_BYTES,
    max_count: int = DEFAULT_MAX_COUNT,
    allowed_types=(PDF_MIMETYPE,),
) -> List[UploadCandidate]:
    """Check a whole batch before any of it is stored.

    ``retained_count`` is the number of attachments the task keeps after the
    edit, so the cap applies to the resulting set rather than the current one.
    Raises on the first rejected file.
    """
    candidates = list(candidates)
    for candidate in candidates:
        if candidate.mimetype not in allowed_types:
            raise InvalidMimeType()
        if candidate.size > max_bytes:
            raise FileTooLarge(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")

    if retained_count + len(candidates) > max_count:
        raise TooManyAttachments(f"Too many files. Maximum is {max_count}")
    return candidates
