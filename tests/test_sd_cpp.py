"""stable-diffusion.cpp backend tests.

Tests cover:
- Progress and seed parsing from stderr output
- Model path resolution and command line construction
- Running a stand-in `sd` script: success, failure exit codes, missing binary
"""

import stat
from pathlib import Path

import pytest

from forgecraft.services.exceptions import BackendNotInstalledError
from forgecraft.services.generation.backend import GenerationOptions
from forgecraft.services.generation.sd_cpp import (
    SdCppBackend,
    StderrLineBuffer,
    parse_progress,
    parse_seed,
)


def write_script(path: Path, body: str) -> Path:
    """Write an executable shell script standing in for the sd binary."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_options(output_path: str, **overrides) -> GenerationOptions:
    fields = {
        "prompt": "a fox",
        "model": "m1",
        "output_path": output_path,
    }
    fields.update(overrides)
    return GenerationOptions(**fields)


# ====================
# Parsing
# ====================


def test_parse_progress_reads_every_step_report():
    reports = parse_progress("sampling...\n  step 1/4 - 2.1s\n  step 2/4\nSTEP 4/4 done")

    assert [(r.step, r.total_steps, r.percent) for r in reports] == [
        (1, 4, 25),
        (2, 4, 50),
        (4, 4, 100),
    ]


def test_parse_progress_ignores_unrelated_and_zero_totals():
    assert parse_progress("loading model weights") == []
    assert parse_progress("step 0/0") == []


def test_parse_seed():
    assert parse_seed("generating image, seed: 123456") == 123456
    assert parse_seed("Seed:42") == 42
    assert parse_seed("no seed here") is None


def test_line_buffer_joins_reports_split_across_reads():
    """A step report cut mid-number is parsed once the read completes it."""
    buffer = StderrLineBuffer()

    assert buffer.feed("seed: 12") == []
    assert buffer.feed("3\r  step 12/2") == ["seed: 123"]
    lines = buffer.feed("0 - 1.2s\r")
    assert lines == ["  step 12/20 - 1.2s"]
    assert [(r.step, r.total_steps, r.percent) for r in parse_progress(lines[0])] == [
        (12, 20, 60)
    ]


def test_line_buffer_flushes_unterminated_last_line():
    buffer = StderrLineBuffer()

    assert buffer.feed("line one\nstep 4/4") == ["line one"]
    assert buffer.flush() == ["step 4/4"]
    assert buffer.flush() == []


# ====================
# Command line
# ====================


def test_resolve_model_path(tmp_path):
    backend = SdCppBackend(tmp_path / "sd", tmp_path / "models")

    assert backend.resolve_model_path("m1") == str(tmp_path / "models" / "m1.safetensors")
    assert backend.resolve_model_path("sdxl.gguf") == str(tmp_path / "models" / "sdxl.gguf")
    assert backend.resolve_model_path("/opt/models/custom.ckpt") == "/opt/models/custom.ckpt"


def test_build_args_includes_optional_flags_only_when_set(tmp_path):
    backend = SdCppBackend(tmp_path / "sd", tmp_path / "models")

    args = backend.build_args(make_options("/out/g1.png"))
    assert args == [
        "-m",
        str(tmp_path / "models" / "m1.safetensors"),
        "-p",
        "a fox",
        "-o",
        "/out/g1.png",
        "--width",
        "512",
        "--height",
        "512",
        "--steps",
        "20",
        "--cfg-scale",
        "7.0",
    ]

    args = backend.build_args(make_options("/out/g1.png", negative_prompt="blurry", seed=9))
    assert args[-4:] == ["-n", "blurry", "--seed", "9"]


# ====================
# Running the binary
# ====================


@pytest.mark.asyncio
async def test_generate_success_reports_progress_and_seed(tmp_path):
    binary = write_script(
        tmp_path / "bin" / "sd",
        'echo "seed: 4242" >&2\n'
        'echo "step 1/2" >&2\n'
        'echo "step 2/2" >&2\n'
        "exit 0\n",
    )
    backend = SdCppBackend(binary, tmp_path / "models")
    output_path = tmp_path / "out" / "nested" / "g1.png"
    progress = []

    result = await backend.generate(make_options(str(output_path)), progress.append)

    assert result.success
    assert result.output_path == str(output_path)
    assert result.seed == 4242
    assert result.generation_time_ms >= 0
    assert [report.percent for report in progress] == [50, 100]
    # Output directory is created before the binary runs
    assert output_path.parent.is_dir()


@pytest.mark.asyncio
async def test_generate_reads_carriage_return_progress(tmp_path):
    binary = write_script(
        tmp_path / "sd",
        "printf 'step 1/4\\rstep 2/4\\rstep 4/4' >&2\nexit 0\n",
    )
    backend = SdCppBackend(binary, tmp_path / "models")
    progress = []

    result = await backend.generate(make_options(str(tmp_path / "g1.png")), progress.append)

    assert result.success
    assert result.seed is None
    assert [report.percent for report in progress] == [25, 50, 100]


@pytest.mark.asyncio
async def test_generate_failure_returns_stderr(tmp_path):
    binary = write_script(tmp_path / "sd", 'echo "error: model not found" >&2\nexit 3\n')
    backend = SdCppBackend(binary, tmp_path / "models")

    result = await backend.generate(make_options(str(tmp_path / "g1.png")))

    assert not result.success
    assert "model not found" in result.error


@pytest.mark.asyncio
async def test_generate_failure_without_output_reports_exit_code(tmp_path):
    binary = write_script(tmp_path / "sd", "exit 2\n")
    backend = SdCppBackend(binary, tmp_path / "models")

    result = await backend.generate(make_options(str(tmp_path / "g1.png")))

    assert not result.success
    assert result.error == "Process exited with code 2"


@pytest.mark.asyncio
async def test_generate_raises_when_binary_missing(tmp_path):
    backend = SdCppBackend(tmp_path / "missing" / "sd", tmp_path / "models")

    assert not backend.is_installed()
    with pytest.raises(BackendNotInstalledError):
        await backend.generate(make_options(str(tmp_path / "g1.png")))
