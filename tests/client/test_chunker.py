import pytest

from upload_client.exceptions import TooManyPartsError, ValidationError
from upload_client.services.chunker import count_parts, plan_chunks

MiB = 1024 * 1024


@pytest.mark.parametrize(
    "file_size,chunk_size",
    [(1, 1), (10, 3), (45 * MiB, 20 * MiB), (40 * MiB, 20 * MiB), (7, 100), (1000, 7)],
)
def test_chunks_cover_file_exactly_once(file_size: int, chunk_size: int) -> None:
    chunks = plan_chunks(file_size, chunk_size)

    assert chunks[0].offset == 0
    for previous, current in zip(chunks, chunks[1:]):
        assert current.offset == previous.end
    assert chunks[-1].end == file_size
    assert sum(c.length for c in chunks) == file_size
    assert all(0 < c.length <= chunk_size for c in chunks)
    assert [c.part_number for c in chunks] == list(range(1, len(chunks) + 1))


def test_45_mib_file_splits_into_three_parts() -> None:
    chunks = plan_chunks(45 * MiB, 20 * MiB)

    assert [c.length for c in chunks] == [20 * MiB, 20 * MiB, 5 * MiB]


def test_empty_file_has_no_chunks() -> None:
    assert plan_chunks(0, 20 * MiB) == []


def test_ceiling_of_10000_parts_is_allowed() -> None:
    assert len(plan_chunks(10000, 1)) == 10000


def test_10001_parts_raise_too_many_parts() -> None:
    with pytest.raises(TooManyPartsError) as exc_info:
        plan_chunks(10001 * 20 * MiB, 20 * MiB)

    assert exc_info.value.part_count == 10001
    assert exc_info.value.max_parts == 10000


def test_invalid_sizes_are_rejected() -> None:
    with pytest.raises(ValidationError):
        count_parts(10, 0)
    with pytest.raises(ValidationError):
        count_parts(-1, 10)
