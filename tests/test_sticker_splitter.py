"""Tests for splitting a sticker sheet and exporting the regions."""

import io
import zipfile

import pytest

from imagevec.exceptions import UnsupportedExtension
from imagevec.pipeline.sticker_splitter import export_regions, export_regions_zip, split_stickers


@pytest.fixture
def sheet_png(transparent_sheet, png_bytes):
    return png_bytes(transparent_sheet(120, 200, [(10, 60, 40), (120, 10, 40)]))


def test_transparent_sheet_splits_into_regions(sheet_png):
    regions = split_stickers(sheet_png, "sheet.png")

    assert len(regions) == 2
    assert regions[0].contour_bbox.x == 119
    assert all(r.image.has_alpha for r in regions)


def test_split_rejects_bad_extension(sheet_png):
    with pytest.raises(UnsupportedExtension):
        split_stickers(sheet_png, "sheet.tiff")


def test_zip_contains_numbered_pngs(sheet_png):
    regions = split_stickers(sheet_png, "sheet.png")

    data = export_regions_zip(regions)

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == ["region_001.png", "region_002.png"]
        assert archive.read("region_001.png").startswith(b"\x89PNG")


def test_empty_zip_for_no_regions():
    with zipfile.ZipFile(io.BytesIO(export_regions_zip([]))) as archive:
        assert archive.namelist() == []


def test_export_to_directory(tmp_path, sheet_png):
    regions = split_stickers(sheet_png, "sheet.png")

    paths = export_regions(regions, tmp_path / "out")

    assert [p.name for p in paths] == ["region_001.png", "region_002.png"]
    assert all(p.is_file() for p in paths)
