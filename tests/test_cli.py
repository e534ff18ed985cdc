"""Tests for the ptf command-line interface."""

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from ptf.cli import main  # noqa: E402
from ptf_helpers import UNITY_BASE, unity_capture  # noqa: E402


@pytest.fixture()
def capture_file(tmp_path: Path) -> Path:
    builder = unity_capture()
    thread = builder.add_thread(1, "Main Thread")
    leaf = builder.add_chain(UNITY_BASE + 0x1010, UNITY_BASE + 0x2010)
    builder.add_sample(UNITY_BASE + 0x2010, leaf, thread, timestamp_ms=0.5)
    builder.add_sample(0x7FF900000018, leaf, thread, timestamp_ms=1.5)
    return builder.build(tmp_path / "capture.json")


def _convert(capture_file: Path, tmp_path: Path, *extra: str) -> Path:
    output = tmp_path / "out" / "profile.ptf"
    code = main([
        "convert",
        str(capture_file),
        str(output),
        "--conversion-log",
        str(tmp_path / "conversion.log"),
        *extra,
    ])
    assert code == 0
    return output


def test_cli_convert_should_write_artifact_and_summary(capture_file: Path, tmp_path: Path, capsys) -> None:
    output = _convert(capture_file, tmp_path)
    assert output.exists()
    out = capsys.readouterr().out
    assert f"Wrote {output}" in out
    assert "samples" in out
    assert (tmp_path / "conversion.log").exists()


def test_cli_dump_should_print_tables(capture_file: Path, tmp_path: Path, capsys) -> None:
    output = _convert(capture_file, tmp_path)
    capsys.readouterr()
    assert main(["dump", str(output), "--table", "functions"]) == 0
    out = capsys.readouterr().out
    assert "functions (2)" in out
    assert "name='UpdateScene'" in out
    assert "samples (" not in out


def test_cli_dump_json_should_respect_symbol_module_override(
    capture_file: Path, tmp_path: Path, capsys
) -> None:
    output = _convert(capture_file, tmp_path, "--symbol-module", "dxgi.dll")
    capsys.readouterr()
    assert main(["dump", str(output), "--json", "--limit", "5"]) == 0
    document = json.loads(capsys.readouterr().out)
    assert document["header"]["tables"]["samples"]["count"] == 2
    assert [function["name"] for function in document["functions"]] == ["Present"]
    assert document["samples"][0]["function"] == -1
    assert len(document["modules"]) == 3


def test_cli_dump_should_limit_rows(capture_file: Path, tmp_path: Path, capsys) -> None:
    output = _convert(capture_file, tmp_path)
    capsys.readouterr()
    assert main(["dump", str(output), "--table", "samples", "--limit", "1"]) == 0
    assert "limited to 1 rows" in capsys.readouterr().out


def test_cli_should_report_errors_with_exit_code(tmp_path: Path, capsys) -> None:
    code = main([
        "convert",
        str(tmp_path / "missing.json"),
        str(tmp_path / "out.ptf"),
        "--conversion-log",
        str(tmp_path / "conversion.log"),
    ])
    assert code == 1
    assert "Error:" in capsys.readouterr().err
