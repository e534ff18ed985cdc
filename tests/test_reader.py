"""Unit tests for the memory-mapped PTF reader."""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from ptf import (  # noqa: E402
    BoundsError,
    ConversionOptions,
    MemoryMapError,
    ProfileMap,
    ProfileReader,
    ReaderClosedError,
    TableKind,
    translate_capture,
)
from ptf.records import HEADER_SIZE, RECORD_SIZES  # noqa: E402
from ptf_helpers import JIT_BASE, UNITY_BASE, unity_capture  # noqa: E402


@pytest.fixture()
def sample_ptf_file(tmp_path: Path) -> Path:
    builder = unity_capture()
    main = builder.add_thread(11, "Main Thread")
    jobs = builder.add_thread(12, "Job.Worker 0")
    leaf = builder.add_chain(UNITY_BASE + 0x1004, JIT_BASE + 0x8)
    builder.add_sample(JIT_BASE + 0x8, leaf, main, timestamp_ms=100.0)
    builder.add_sample(UNITY_BASE + 0x1004, -1, jobs, timestamp_ms=250.0)
    builder.add_sample(JIT_BASE + 0x8, leaf, main, timestamp_ms=480.0)
    capture = builder.build(tmp_path / "capture.json")
    path = tmp_path / "sample.ptf"
    with path.open("wb") as stream:
        translate_capture(capture, stream, ConversionOptions(conversion_log=tmp_path / "conversion.log"))
    return path


def test_ProfileReader_load_table_should_return_single_table(sample_ptf_file: Path) -> None:
    reader = ProfileReader()
    reader.open(sample_ptf_file)
    threads = reader.load_table(TableKind.THREADS)
    assert [thread.name for thread in threads] == ["Main Thread", "Job.Worker 0"]
    samples = reader.load_table(TableKind.SAMPLES)
    assert [sample.timestamp for sample in samples] == [100.0, 250.0, 480.0]
    reader.close()


def test_ProfileReader_iter_table_should_decode_lazily(sample_ptf_file: Path) -> None:
    reader = ProfileReader()
    reader.open(sample_ptf_file)
    iterator = reader.iter_table(TableKind.SAMPLES, start=1)
    assert len(iterator) == 2
    assert next(iterator).thread_index == 1
    assert next(iterator).timestamp == 480.0
    with pytest.raises(StopIteration):
        next(iterator)
    reader.close()


def test_ProfileReader_read_record_should_match_full_load(sample_ptf_file: Path) -> None:
    with_reader = ProfileReader()
    with_reader.open(sample_ptf_file)
    with with_reader as reader:
        tables = reader.read_all()
        for kind in TableKind:
            for index, record in enumerate(tables.table(kind)):
                assert reader.read_record(kind, index) == record
        with pytest.raises(IndexError):
            reader.read_record(TableKind.THREADS, 2)
    with pytest.raises(ReaderClosedError):
        with_reader.load_table(TableKind.SAMPLES)


def test_ProfileReader_get_metadata_should_expose_header(sample_ptf_file: Path) -> None:
    reader = ProfileReader()
    reader.open(sample_ptf_file)
    metadata = reader.get_metadata()
    assert metadata["version"] == 1
    assert metadata["tables"]["samples"]["count"] == 3
    assert metadata["tables"]["stack_frames"]["count"] == 2
    assert Path(metadata["path"]) == sample_ptf_file
    reader.close()


def test_ProfileReader_open_should_raise_on_truncated_file(sample_ptf_file: Path) -> None:
    data = sample_ptf_file.read_bytes()
    sample_ptf_file.write_bytes(data[:-1])
    reader = ProfileReader()
    with pytest.raises(BoundsError):
        reader.open(sample_ptf_file)
    with pytest.raises(ReaderClosedError):
        reader.count(TableKind.SAMPLES)


def test_ProfileReader_open_should_raise_on_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.ptf"
    path.write_bytes(b"")
    with pytest.raises(MemoryMapError):
        ProfileReader().open(path)


def test_ProfileReader_open_should_raise_bounds_error_for_short_file(tmp_path: Path) -> None:
    path = tmp_path / "short.ptf"
    path.write_bytes(b"\x01\x00\x00\x00")
    reader = ProfileReader()
    with pytest.raises(BoundsError):
        reader.open(path)
    with pytest.raises(ReaderClosedError):
        reader.header


def test_ProfileMap_table_bytes_should_cover_whole_records(sample_ptf_file: Path) -> None:
    profile_map = ProfileMap()
    profile_map.open(sample_ptf_file)
    header = profile_map.header
    for kind in TableKind:
        payload = profile_map.table_bytes(kind)
        assert len(payload) == header.extent(kind).count * RECORD_SIZES[kind]
    data = sample_ptf_file.read_bytes()
    assert profile_map.table_bytes(TableKind.SAMPLES)[:RECORD_SIZES[TableKind.SAMPLES]] == (
        data[HEADER_SIZE:HEADER_SIZE + RECORD_SIZES[TableKind.SAMPLES]]
    )
    profile_map.close()
    with pytest.raises(ReaderClosedError):
        profile_map.table_bytes(TableKind.SAMPLES)


def test_ProfileMap_record_bytes_should_reject_out_of_range_indices(sample_ptf_file: Path) -> None:
    profile_map = ProfileMap()
    profile_map.open(sample_ptf_file)
    assert len(profile_map.record_bytes(TableKind.THREADS, 1)) == RECORD_SIZES[TableKind.THREADS]
    for index in (-1, 2):
        with pytest.raises(IndexError):
            profile_map.record_bytes(TableKind.THREADS, index)
    profile_map.close()
