"""Background removal post-process for completed generations.

Writes a transparent PNG next to the original image. Failures are reported in
the result, never raised, because the original image is still a valid output.
"""

import asyncio
import re
from pathlib import Path
from typing import Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class BackgroundRemovalResult(BaseModel):
    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None


BackgroundRemover = Callable[[str, str], Awaitable[BackgroundRemovalResult]]


def transparent_path_for(original_path: str) -> str:
    """Derive the transparent image path: image.png -> image-transparent.png"""
    return re.sub(r"\.png$", "-transparent.png", original_path)


def _remove_background_sync(input_path: str, output_path: str) -> None:
    # rembg loads an ONNX session on first use; only import it when enabled
    from rembg import remove

    data = Path(input_path).read_bytes()
    Path(output_path).write_bytes(remove(data))


async def remove_background(input_path: str, output_path: str) -> BackgroundRemovalResult:
    """Remove the background from an image and save it as a transparent PNG.

    Runs in a thread pool as rembg is synchronous and CPU bound.

    Args:
        input_path: Path to the source image
        output_path: Where the transparent image is written

    Returns:
        Result with success flag and output path, or the error message
    """
    logger.info("background_removal.started", input_path=input_path)
    try:
        await asyncio.to_thread(_remove_background_sync, input_path, output_path)
    except Exception as e:
        logger.error(
            "background_removal.failed",
            input_path=input_path,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        return BackgroundRemovalResult(success=False, error=str(e))

    logger.info("background_removal.saved", output_path=output_path)
    return BackgroundRemovalResult(success=True, output_path=output_path)
