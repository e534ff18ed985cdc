"""Unit tests for the JSON capture event source."""

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from interfaces import SampleEvent, SymbolOptions  # noqa: E402
from ptf import CaptureFormatError, CaptureSource, SourceUnavailableError  # noqa: E402
from ptf_helpers import JIT_BASE, UNITY_BASE, CaptureBuilder, unity_capture  # noqa: E402

POLICY = SymbolOptions(symbol_modules=("unity.exe", "ntdll.dll"))


def _open(path: Path, options: SymbolOptions = POLICY):
    return CaptureSource().open_or_convert(path, options)


def test_CaptureSource_open_or_convert_should_derive_stack_depths(tmp_path: Path) -> None:
    builder = CaptureBuilder()
    root = builder.add_stack(0x10)
    # Callers may be listed after their callees.
    leaf = builder.add_stack(0x30, caller=2)
    builder.add_stack(0x20, caller=root)
    trace = _open(builder.build(tmp_path / "stacks.json"))
    assert trace.call_stack(root).depth == 0
    assert trace.call_stack(2).depth == 1
    assert trace.call_stack(leaf).depth == 2
    assert trace.call_stack(leaf).caller == 2


def test_CaptureSource_open_or_convert_should_reject_cyclic_stacks(tmp_path: Path) -> None:
    builder = CaptureBuilder()
    builder.add_stack(0x10, caller=1)
    builder.add_stack(0x20, caller=0)
    with pytest.raises(CaptureFormatError):
        _open(builder.build(tmp_path / "cycle.json"))


def test_CaptureSource_method_at_should_respect_symbol_policy(tmp_path: Path) -> None:
    trace = _open(unity_capture().build(tmp_path / "capture.json"))
    method = trace.method_at(UNITY_BASE + 0x1050)
    assert method is not None
    assert method.full_name == "PlayerLoop"
    assert trace.method(method.method_index) == method
    assert trace.method_at(UNITY_BASE + 0x1100) is None
    assert trace.method_at(0x7FF900000010) is None


def test_CaptureSource_method_at_should_extend_unsized_methods_to_next_symbol(tmp_path: Path) -> None:
    builder = CaptureBuilder()
    builder.add_module(
        "C:\\game\\Unity.exe",
        image_base=0x1000,
        image_size=0x400,
        methods=[{"name": "b", "rva": "0x200"}, {"name": "a", "rva": 0x100}],
    )
    trace = _open(builder.build(tmp_path / "unsized.json"))
    assert trace.method_at(0x11FF).full_name == "a"
    assert trace.method_at(0x1200).full_name == "b"
    assert trace.method_at(0x13FF).full_name == "b"
    assert trace.method_at(0x1400) is None


def test_CaptureSource_should_load_symbol_files_from_search_path(tmp_path: Path) -> None:
    symbols = tmp_path / "symbols"
    symbols.mkdir()
    (symbols / "ntdll.pdb.syms.json").write_text(json.dumps({
        "methods": [{"name": "NtWaitForSingleObject", "rva": 0x40, "size": 0x20}],
    }))
    builder = CaptureBuilder()
    builder.add_module("C:\\Windows\\System32\\ntdll.dll", image_base=0x50000, pdb_name="ntdll.pdb")
    capture = builder.build(tmp_path / "capture.json")

    assert _open(capture).method_at(0x50050) is None
    trace = _open(capture, SymbolOptions(("ntdll.dll",), additional_symbol_path=symbols))
    assert trace.method_at(0x50050).full_name == "NtWaitForSingleObject"


def test_CaptureSource_jit_lookup_should_find_compiled_code(tmp_path: Path) -> None:
    trace = _open(unity_capture().build(tmp_path / "capture.json"))
    info = trace.jit_lookup.get_jit_info(JIT_BASE + 0x1FF)
    assert info is not None
    assert info.method.declaring_type.name == "Player"
    assert trace.jit_lookup.get_jit_info(JIT_BASE + 0x200) is None
    lambda_info = trace.jit_lookup.get_jit_info(JIT_BASE + 0x400)
    assert lambda_info.method.declaring_type is None


def test_CaptureSource_events_should_preserve_capture_order(tmp_path: Path) -> None:
    builder = unity_capture()
    builder.add_event("ProcessStart", timestamp_ms=0.0)
    builder.add_sample("0x140001000", timestamp_ms=1.5)
    trace = _open(builder.build(tmp_path / "capture.json"))
    events = list(trace.events())
    assert not isinstance(events[0], SampleEvent)
    assert events[1].instruction_pointer == 0x140001000
    assert events[1].call_stack == -1


def test_CaptureSource_open_or_convert_should_raise_on_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SourceUnavailableError):
        _open(tmp_path / "missing.json")


def test_CaptureSource_open_or_convert_should_raise_on_malformed_documents(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{\"events\": [")
    with pytest.raises(CaptureFormatError):
        _open(broken)

    bad_process = CaptureBuilder()
    bad_process.add_process(1, "Unity", loaded_modules=[3])
    with pytest.raises(CaptureFormatError):
        _open(bad_process.build(tmp_path / "bad_process.json"))


@pytest.mark.parametrize("call_stack", [1, -2])
def test_CaptureSource_open_or_convert_should_reject_unknown_sample_stacks(
    tmp_path: Path, call_stack: int
) -> None:
    builder = CaptureBuilder()
    builder.add_stack(0x10)
    builder.add_sample(0x10, call_stack=call_stack)
    with pytest.raises(CaptureFormatError, match="unknown call stack"):
        _open(builder.build(tmp_path / "bad_stack.json"))


@pytest.mark.parametrize("thread", [7, -3])
def test_CaptureSource_open_or_convert_should_reject_unknown_sample_threads(
    tmp_path: Path, thread: int
) -> None:
    builder = CaptureBuilder()
    builder.add_thread(100, "Main Thread")
    builder.add_sample(0x10, thread=thread)
    with pytest.raises(CaptureFormatError, match="unknown thread"):
        _open(builder.build(tmp_path / "bad_thread.json"))


def test_CaptureSource_open_or_convert_should_accept_samples_without_stack_or_thread(
    tmp_path: Path,
) -> None:
    builder = CaptureBuilder()
    builder.add_sample(0x10)
    (event,) = list(_open(builder.build(tmp_path / "bare.json")).events())
    assert event.call_stack == -1
    assert event.thread == -1
