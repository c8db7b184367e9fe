"""Generation backend contract.

The queue processor only knows this interface: given resolved options and a
progress callback, a backend produces one image and reports the outcome.
"""

from typing import Callable, Optional, Protocol

from pydantic import BaseModel

from forgecraft.models.queue_item import GenerationRequest


class GenerationOptions(BaseModel):
    """Resolved parameters passed to a backend for one job."""

    prompt: str
    negative_prompt: Optional[str] = None
    model: str
    output_path: str
    width: int = 512
    height: int = 512
    steps: int = 20
    cfg_scale: float = 7.0
    seed: Optional[int] = None

    @classmethod
    def from_request(cls, request: GenerationRequest) -> "GenerationOptions":
        return cls(
            prompt=request.prompt,
            negative_prompt=request.negative_prompt,
            model=request.model,
            output_path=request.output_path,
            width=request.width,
            height=request.height,
            steps=request.steps,
            cfg_scale=request.cfg_scale,
            seed=request.seed,
        )


class GenerationProgress(BaseModel):
    step: int
    total_steps: int
    percent: int


class GenerationResult(BaseModel):
    """Outcome of one backend run.

    success=False carries an error message; success=True may carry the seed
    the backend actually used.
    """

    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    generation_time_ms: int = 0
    seed: Optional[int] = None


ProgressCallback = Callable[[GenerationProgress], None]


class GenerationBackend(Protocol):
    """Anything that can run a generation job.

    Implementations may raise instead of returning success=False; an OSError
    carrying errno.ENOSPC signals a full disk.
    """

    async def generate(
        self, options: GenerationOptions, on_progress: ProgressCallback | None = None
    ) -> GenerationResult: ...
