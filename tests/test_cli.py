"""Smoke tests for the command line entry point."""

import os
import time

import numpy as np

from imagevec.cli.main import build_parser, main
from imagevec.repositories.image_repository import ImageRepository


def test_parser_defaults():
    args = build_parser().parse_args(["convert", "in.png", "out.svg"])
    assert args.vectorize == "default"
    assert args.backend == "vtracer"
    assert not args.keep_background


def test_preprocess_with_explicit_steps(tmp_path, solid_image):
    source = ImageRepository().save(solid_image(12, 12, (120, 60, 30, 255)), tmp_path / "in.png")
    target = tmp_path / "out.png"

    code = main(["preprocess", str(source), str(target), "--steps", "SHARPEN,ADJUST_CONTRAST",
                 "--contrast", "1.1"])

    assert code == 0
    assert ImageRepository().load(target).pixels.shape == (12, 12, 4)


def test_preprocess_unknown_step_exits_nonzero(tmp_path, solid_image):
    source = ImageRepository().save(solid_image(4, 4), tmp_path / "in.png")
    assert main(["preprocess", str(source), str(tmp_path / "out.png"), "--steps", "BLUR"]) == 1


def test_convert_rejects_unsupported_extension(tmp_path):
    source = tmp_path / "anim.gif"
    source.write_bytes(b"GIF89a")
    assert main(["convert", str(source), str(tmp_path / "out.svg")]) == 1


def test_missing_input_exits_nonzero(tmp_path):
    assert main(["split", str(tmp_path / "missing.png"), str(tmp_path / "out")]) == 1


def test_split_to_zip(tmp_path, transparent_sheet):
    source = ImageRepository().save(transparent_sheet(120, 200, [(10, 60, 40), (120, 10, 40)]),
                                    tmp_path / "sheet.png")
    target = tmp_path / "stickers.zip"

    assert main(["split", str(source), str(target)]) == 0
    assert target.read_bytes().startswith(b"PK")


def test_remove_bg_writes_png(tmp_path, disc_jpeg_bytes):
    source = tmp_path / "disc.jpg"
    source.write_bytes(disc_jpeg_bytes)
    target = tmp_path / "disc.png"

    assert main(["remove-bg", str(source), str(target)]) == 0
    result = ImageRepository().load(target)
    assert result.has_alpha
    assert result.alpha[0, 0] == 0
    assert np.count_nonzero(result.alpha) > 0


def test_cleanup_explicit_directory(tmp_path):
    old = tmp_path / "old.svg"
    old.write_bytes(b"x")
    past = time.time() - 72 * 3600
    os.utime(old, (past, past))

    assert main(["cleanup", "--directory", str(tmp_path), "--max-age-hours", "24"]) == 0
    assert not old.exists()


def _mixed_folder(tmp_path, disc_jpeg_bytes):
    folder = tmp_path / "in"
    folder.mkdir()
    (folder / "a_broken.jpg").write_bytes(b"not a jpeg at all")
    (folder / "b_good.jpg").write_bytes(disc_jpeg_bytes)
    return folder


def test_remove_bg_batch_continues_past_a_broken_file(tmp_path, disc_jpeg_bytes):
    folder = _mixed_folder(tmp_path, disc_jpeg_bytes)
    out = tmp_path / "out"

    assert main(["remove-bg", str(folder), str(out)]) == 1
    assert (out / "b_good.png").is_file()
    assert not (out / "a_broken.png").exists()


def test_preprocess_batch_continues_past_a_broken_file(tmp_path, disc_jpeg_bytes):
    folder = _mixed_folder(tmp_path, disc_jpeg_bytes)
    out = tmp_path / "out"

    assert main(["preprocess", str(folder), str(out), "--steps", "SHARPEN"]) == 1
    assert (out / "b_good.png").is_file()


def test_clean_batch_exits_zero(tmp_path, disc_jpeg_bytes):
    folder = tmp_path / "in"
    folder.mkdir()
    (folder / "disc.jpg").write_bytes(disc_jpeg_bytes)

    assert main(["remove-bg", str(folder), str(tmp_path / "out")]) == 0
    assert (tmp_path / "out" / "disc.png").is_file()
