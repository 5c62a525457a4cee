"""
Tests for the command line host.

Run with: uv run pytest tests/test_cli.py
"""

import logging

import pytest

from wordvm.cli import main, EXIT_OK, EXIT_FAULT, EXIT_INVALID_INPUT
from wordvm.codec import assemble, serialize_program, ADD, JMP, PRN, PRNCHAR, HALT


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    package_logger = logging.getLogger("wordvm")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


def test_demo_countdown(capsys):
    assert main(["demo", "countdown"]) == EXIT_OK
    assert capsys.readouterr().out == "9876543210"


def test_demo_hello(capsys):
    assert main(["demo", "hello"]) == EXIT_OK
    assert capsys.readouterr().out == "Hello world"


def test_run_file(tmp_path, capsys):
    program = tmp_path / "sum.bin"
    program.write_bytes(serialize_program(assemble([40, 2, ADD, PRN, HALT])))
    assert main(["run", str(program)]) == EXIT_OK
    assert capsys.readouterr().out == "42"


def test_run_file_fault(tmp_path, capsys):
    program = tmp_path / "bad.hex"
    program.write_text("\n".join(f"{w:08x}" for w in assemble([60, JMP, HALT])))
    assert main(["--quiet", "run", str(program)]) == EXIT_FAULT
    assert "out of bounds for INSTRUCTION" in capsys.readouterr().err


def test_invalid_input(tmp_path, capsys):
    assert main(["run", str(tmp_path / "missing.bin")]) == EXIT_INVALID_INPUT

    truncated = tmp_path / "truncated.bin"
    truncated.write_bytes(b"\x00\x01")
    assert main(["run", str(truncated)]) == EXIT_INVALID_INPUT

    # Layout with data region before the instruction region
    assert main(["--stack-limit", "60", "--data-base", "50", "demo", "countdown"]) == EXIT_INVALID_INPUT

    # Countdown needs 17 instruction words
    assert main(["--stack-limit", "50", "--data-base", "60", "demo", "countdown"]) == EXIT_INVALID_INPUT
    assert "error" in capsys.readouterr().err


def test_custom_layout(capsys):
    assert main(["--mem-size", "40", "--stack-limit", "10", "--data-base", "30", "demo", "countdown"]) == EXIT_OK
    assert capsys.readouterr().out == "9876543210"


def test_debug_flag_traces(capsys):
    assert main(["--debug", "demo", "countdown"]) == EXIT_OK
    captured = capsys.readouterr()
    assert captured.out == "9876543210"
    assert "DEBUG: PRN 9" in captured.err


def test_fuzz_command(capsys):
    assert main(["fuzz", "-n", "50", "-s", "1", "-g", "expression"]) == EXIT_OK
    assert "No bugs detected!" in capsys.readouterr().out


def test_fuzz_uses_layout(capsys):
    layout_args = ["--mem-size", "20", "--stack-limit", "3", "--data-base", "15"]
    assert main(layout_args + ["fuzz", "-n", "100", "-s", "2", "-g", "expression"]) == EXIT_OK
    assert "No bugs detected!" in capsys.readouterr().out

    # No stack slot left for an expression
    layout_args = ["--mem-size", "20", "--stack-limit", "1", "--data-base", "15"]
    assert main(layout_args + ["fuzz", "-n", "1", "-g", "expression"]) == EXIT_INVALID_INPUT
    assert main(["--stack-limit", "60", "--data-base", "50", "fuzz", "-n", "1"]) == EXIT_INVALID_INPUT


def test_run_prints_surrogate_as_replacement(tmp_path, capsys):
    program = tmp_path / "surrogate.bin"
    program.write_bytes(serialize_program(assemble([0xD800, PRNCHAR, 5, PRN, HALT])))
    assert main(["run", str(program)]) == EXIT_OK
    assert capsys.readouterr().out == "\ufffd5"
