from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from bingrep import __version__
from bingrep.cli import EXIT_INPUT_ERROR, EXIT_PARSE_ERROR, bingrep_cli

from conftest import Sample, build_macho64


@pytest.fixture
def quiet_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text('[global]\nlog_level = "CRITICAL"\n')
    return path


def _run(*args: str) -> object:
    return CliRunner().invoke(bingrep_cli, list(args))


def test_structural_listing(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "--config", str(quiet_config))
    assert result.exit_code == 0, result.output
    assert "ProgramHeaders(2):" in result.output
    assert "SectionHeaders(8):" in result.output


def test_search_prints_match_tree(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "--search", "HELLO", "--config", str(quiet_config))
    assert result.exit_code == 0, result.output
    assert "Matches for 'HELLO':" in result.output
    assert "PT_LOAD(0)" in result.output
    assert ".data(2)" in result.output


def test_hex_search_and_offset(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(
        str(path), "-s", "48454c4c4f", "--hex", "-O", "0x118",
        "--config", str(quiet_config),
    )
    assert result.exit_code == 0, result.output
    assert "Matches for '48454c4c4f':" in result.output
    assert "Offset 0x118:" in result.output


def test_json_output(elf64_dyn: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64_dyn.write(tmp_path, "libfoo.so")
    result = _run(str(path), "--search", "puts", "--json", "--config", str(quiet_config))
    assert result.exit_code == 0, result.output
    doc = json.loads(result.output)
    assert doc["report_type"] == "bingrep_report"
    assert doc["version"] == __version__
    assert doc["info"]["format"] == "elf"
    assert doc["libraries"] == ["libc.so.6"]
    assert doc["summary"]["matches"] == len(doc["matches"]) >= 1


def test_output_file(macho64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = macho64.write(tmp_path, "a.macho")
    out = tmp_path / "reports" / "report.json"
    result = _run(str(path), "-o", str(out), "--config", str(quiet_config))
    assert result.exit_code == 0, result.output
    assert "JSON report saved" in result.output
    doc = json.loads(out.read_text())
    assert doc["info"]["format"] == "macho"
    assert [e["name"] for e in doc["exports"]] == ["_main"]


def test_debug_dumps_ranges(pe64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = pe64.write(tmp_path, "sample.dll")
    result = _run(str(path), "--debug", "--pretty", "--config", str(quiet_config))
    assert result.exit_code == 0, result.output
    assert "Ranges(0):" in result.output


def test_empty_pattern_exit_code(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "--search", "", "--config", str(quiet_config))
    assert result.exit_code == EXIT_INPUT_ERROR
    assert "must not be empty" in result.output


def test_bad_hex_exit_code(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "-s", "zz", "--hex", "--config", str(quiet_config))
    assert result.exit_code == EXIT_INPUT_ERROR


def test_hex_without_search(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "--hex", "--config", str(quiet_config))
    assert result.exit_code == EXIT_INPUT_ERROR


def test_truncated_file_exit_code(elf64: Sample, tmp_path: Path, quiet_config: Path) -> None:
    path = tmp_path / "short.elf"
    path.write_bytes(elf64.data[: elf64.layout["shoff"] + 10])
    result = _run(str(path), "--config", str(quiet_config))
    assert result.exit_code == EXIT_INPUT_ERROR
    assert "file too short for section headers" in result.output


def test_unparseable_file_exit_code(tmp_path: Path, quiet_config: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("just some text\n")
    result = _run(str(path), "--config", str(quiet_config))
    assert result.exit_code == EXIT_PARSE_ERROR
    assert "Cannot parse" in result.output


def test_bad_integer_option(elf64: Sample, tmp_path: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "--offset", "banana")
    assert result.exit_code == 2
    assert "not a valid integer" in result.output


def test_missing_config_file(elf64: Sample, tmp_path: Path) -> None:
    path = elf64.write(tmp_path, "a.out")
    result = _run(str(path), "--config", str(tmp_path / "missing.toml"))
    assert result.exit_code == EXIT_INPUT_ERROR
    assert "Cannot load configuration" in result.output


def test_version() -> None:
    result = _run("--version")
    assert result.exit_code == 0
    assert __version__ in result.output


def test_demangle_flag(tmp_path: Path, quiet_config: Path) -> None:
    sample = build_macho64(
        export_name="__Z3fooi",
        import_name="__ZN4core3fmt5write17h0123456789abcdefE",
    )
    path = sample.write(tmp_path, "mangled.macho")

    plain = json.loads(_run(str(path), "--json", "--config", str(quiet_config)).output)
    assert [e["name"] for e in plain["exports"]] == ["__Z3fooi"]

    result = _run(str(path), "-D", "--json", "--config", str(quiet_config))
    assert result.exit_code == 0, result.output
    doc = json.loads(result.output)
    assert doc["demangled"] is True
    assert [e["name"] for e in doc["exports"]] == ["foo(int)"]
    assert "core::fmt::write" in doc["imports"][0]["name"]

    listing = _run(str(path), "--demangle", "--config", str(quiet_config))
    assert listing.exit_code == 0, listing.output
    assert "foo(int)" in listing.output
