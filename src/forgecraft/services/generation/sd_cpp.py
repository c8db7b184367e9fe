"""stable-diffusion.cpp backend: runs the local `sd` binary for one job.

Progress and the seed actually used are parsed from the binary's stderr.
"""

import asyncio
import codecs
import re
import time
from pathlib import Path

import structlog

from forgecraft.services.exceptions import BackendNotInstalledError
from forgecraft.services.generation.backend import (
    GenerationOptions,
    GenerationProgress,
    GenerationResult,
    ProgressCallback,
)

logger = structlog.get_logger(__name__)

PROGRESS_PATTERN = re.compile(r"step\s+(\d+)/(\d+)", re.IGNORECASE)
SEED_PATTERN = re.compile(r"seed:\s*(\d+)", re.IGNORECASE)
LINE_BREAK_PATTERN = re.compile(r"[\r\n]")

MODEL_FILE_SUFFIX = ".safetensors"
STDERR_CHUNK_SIZE = 4096


def parse_progress(text: str) -> list[GenerationProgress]:
    """Extract every "step N/M" report from a chunk of stderr output."""
    reports = []
    for match in PROGRESS_PATTERN.finditer(text):
        step, total_steps = int(match.group(1)), int(match.group(2))
        if total_steps <= 0:
            continue
        reports.append(
            GenerationProgress(
                step=step,
                total_steps=total_steps,
                percent=round(step / total_steps * 100),
            )
        )
    return reports


def parse_seed(text: str) -> int | None:
    match = SEED_PATTERN.search(text)
    return int(match.group(1)) if match else None


class StderrLineBuffer:
    """Reassembles stderr lines from arbitrarily split reads.

    The binary redraws its progress bar with carriage returns, so both CR and
    LF end a line. A trailing partial line is held until the next read
    completes it.
    """

    def __init__(self) -> None:
        self._partial = ""

    def feed(self, text: str) -> list[str]:
        lines = LINE_BREAK_PATTERN.split(self._partial + text)
        self._partial = lines.pop()
        return [line for line in lines if line]

    def flush(self) -> list[str]:
        rest, self._partial = self._partial, ""
        return [rest] if rest else []


class SdCppBackend:
    """Generation backend that spawns the stable-diffusion.cpp CLI.

    Command line:
        sd -m <model> -p <prompt> -o <output> --width W --height H
           --steps S --cfg-scale C [-n <negative prompt>] [--seed N]
    """

    def __init__(self, binary_path: Path, models_dir: Path):
        self.binary_path = Path(binary_path)
        self.models_dir = Path(models_dir)

    def is_installed(self) -> bool:
        return self.binary_path.is_file()

    def resolve_model_path(self, model: str) -> str:
        """Resolve a model id, filename or absolute path to a file path.

        - Absolute path: returned as-is
        - Filename with an extension: looked up in the models directory
        - Bare model id: <models_dir>/<id>.safetensors
        """
        path = Path(model)
        if path.is_absolute():
            return str(path)
        if path.suffix:
            return str(self.models_dir / path)
        return str(self.models_dir / f"{model}{MODEL_FILE_SUFFIX}")

    def build_args(self, options: GenerationOptions) -> list[str]:
        args = [
            "-m",
            self.resolve_model_path(options.model),
            "-p",
            options.prompt,
            "-o",
            options.output_path,
            "--width",
            str(options.width),
            "--height",
            str(options.height),
            "--steps",
            str(options.steps),
            "--cfg-scale",
            str(options.cfg_scale),
        ]
        if options.negative_prompt:
            args.extend(["-n", options.negative_prompt])
        if options.seed is not None:
            args.extend(["--seed", str(options.seed)])
        return args

    async def generate(
        self, options: GenerationOptions, on_progress: ProgressCallback | None = None
    ) -> GenerationResult:
        """Run the binary for one job and wait for it to exit.

        Args:
            options: Resolved generation parameters
            on_progress: Called for every step reported on stderr

        Returns:
            success=True with the output path and parsed seed on exit code 0,
            otherwise success=False with the captured stderr

        Raises:
            BackendNotInstalledError: If the binary does not exist
            OSError: If the output directory cannot be created (e.g. ENOSPC)
        """
        if not self.is_installed():
            raise BackendNotInstalledError("sd-cpp is not installed. Please install it first.")

        Path(options.output_path).parent.mkdir(parents=True, exist_ok=True)

        start_time = time.monotonic()
        args = self.build_args(options)

        logger.debug("sd_cpp.spawn", binary=str(self.binary_path), output=options.output_path)

        try:
            process = await asyncio.create_subprocess_exec(
                str(self.binary_path),
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return GenerationResult(
                success=False,
                error=str(e),
                generation_time_ms=_elapsed_ms(start_time),
            )

        error_output = []
        captured_seed: int | None = None
        lines = StderrLineBuffer()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        def handle_line(line: str) -> None:
            nonlocal captured_seed
            if on_progress is not None:
                for progress in parse_progress(line):
                    on_progress(progress)

            seed = parse_seed(line)
            if seed is not None:
                captured_seed = seed

        assert process.stderr is not None
        while True:
            chunk = await process.stderr.read(STDERR_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            error_output.append(text)
            for line in lines.feed(text):
                handle_line(line)

        tail = decoder.decode(b"", final=True)
        error_output.append(tail)
        for line in lines.feed(tail) + lines.flush():
            handle_line(line)

        return_code = await process.wait()
        generation_time_ms = _elapsed_ms(start_time)

        if return_code == 0:
            return GenerationResult(
                success=True,
                output_path=options.output_path,
                generation_time_ms=generation_time_ms,
                seed=captured_seed,
            )

        return GenerationResult(
            success=False,
            error="".join(error_output) or f"Process exited with code {return_code}",
            generation_time_ms=generation_time_ms,
        )


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
