"""Background removal tests.

rembg is an optional extra; the failure path is exercised without it by
pointing the remover at a file that does not exist.
"""

import pytest

from forgecraft.services.background_removal import remove_background, transparent_path_for


def test_transparent_path_for():
    assert transparent_path_for("/out/g1.png") == "/out/g1-transparent.png"
    assert transparent_path_for("/out/v1.png/g1.png") == "/out/v1.png/g1-transparent.png"


@pytest.mark.asyncio
async def test_remove_background_reports_failure(tmp_path):
    result = await remove_background(
        str(tmp_path / "missing.png"), str(tmp_path / "missing-transparent.png")
    )

    assert not result.success
    assert result.output_path is None
    assert result.error
    assert not (tmp_path / "missing-transparent.png").exists()
