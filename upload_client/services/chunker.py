from typing import List

from upload_client.config import MAX_PARTS
from upload_client.exceptions import TooManyPartsError, ValidationError
from upload_client.models.upload_models import Chunk


def count_parts(file_size: int, chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValidationError("chunk_size must be positive")
    if file_size < 0:
        raise ValidationError("file_size must not be negative")
    return -(-file_size // chunk_size)


def plan_chunks(file_size: int, chunk_size: int, max_parts: int = MAX_PARTS) -> List[Chunk]:
    """Split ``[0, file_size)`` into consecutive ranges of ``chunk_size`` bytes.

    The last range is shorter when the size is not a multiple of the chunk
    size. The part ceiling is checked before anything is built so callers can
    run this ahead of initiating the upload.
    """
    part_count = count_parts(file_size, chunk_size)
    if part_count > max_parts:
        raise TooManyPartsError(part_count, max_parts)

    return [
        Chunk(
            index=index,
            offset=index * chunk_size,
            length=min(chunk_size, file_size - index * chunk_size),
        )
        for index in range(part_count)
    ]
