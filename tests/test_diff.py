"""
Smoke tests for the img-diff command line.

Images are drawn with numpy and written as PNG through OpenCV, so the whole
decode -> match -> report path is exercised.
"""

import cv2
import numpy as np
import pytest

import utils
from diff import main as cli_main
from diff import threshold_value


def _save(path, rgba):
    assert cv2.imwrite(str(path), cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA))
    return str(path)


def _gradient(width, height):
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, 0] = (np.arange(width) * 3)[None, :]
    pixels[:, :, 1] = (np.arange(height) * 3)[:, None]
    pixels[:, :, 2] = 128
    pixels[:, :, 3] = 255
    return pixels


@pytest.fixture
def moved_pair(tmp_path):
    old = _gradient(80, 80)
    old[0:10, 0:10] = (255, 0, 0, 255)
    old[0:10, 10:20] = (0, 0, 255, 255)
    new = _gradient(80, 80)
    new[0:10, 50:60] = (255, 0, 0, 255)
    new[0:10, 60:70] = (0, 0, 255, 255)
    return _save(tmp_path / "old.png", old), _save(tmp_path / "new.png", new)


@pytest.fixture
def identical_pair(tmp_path):
    pixels = _gradient(100, 100)
    return _save(tmp_path / "a.png", pixels), _save(tmp_path / "b.png", pixels)


@pytest.fixture(autouse=True)
def quiet():
    yield
    utils.set_verbosity(0)


def _stdout_lines(capsys):
    return capsys.readouterr().out.splitlines()


def test_identical_images_print_nothing(identical_pair, capsys):
    assert cli_main(list(identical_pair)) == 0
    assert _stdout_lines(capsys) == []


def test_identical_images_same_mode(identical_pair, capsys):
    assert cli_main([*identical_pair, "--same"]) == 0
    assert _stdout_lines(capsys) == ["0,0+100x100"]


def test_moved_squares_are_reported(moved_pair, capsys):
    assert cli_main([*moved_pair, "--range=5"]) == 0
    assert _stdout_lines(capsys) == ["0,0+20x10 50,0+20x10", "0,0+20x10"]


def test_moved_squares_without_join(moved_pair, capsys):
    assert cli_main([*moved_pair, "--range=5", "--no-join"]) == 0
    assert _stdout_lines(capsys) == [
        "0,0+10x10 50,0+10x10",
        "10,0+10x10 60,0+10x10",
        "0,0+20x10",
    ]


def test_imagemagick_geometry(moved_pair, capsys):
    assert cli_main([*moved_pair, "--range", "5", "--imagemagick"]) == 0
    assert _stdout_lines(capsys) == ["20x10+0+0 20x10+50+0", "20x10+0+0"]


def test_nothing_in_common_prints_whole_image(tmp_path, capsys):
    black = np.zeros((100, 100, 4), dtype=np.uint8)
    black[:, :, 3] = 255
    white = np.full((100, 100, 4), 255, dtype=np.uint8)
    old = _save(tmp_path / "black.png", black)
    new = _save(tmp_path / "white.png", white)

    assert cli_main([old, new]) == 0
    assert _stdout_lines(capsys) == ["0,0+100x100"]

    assert cli_main([old, new, "--same"]) == 0
    assert _stdout_lines(capsys) == []


def test_threshold_flag(tmp_path, capsys):
    base = np.full((20, 20, 4), 100, dtype=np.uint8)
    old = _save(tmp_path / "old.png", base)
    new = _save(tmp_path / "new.png", base + 1)

    assert cli_main([old, new, "--threshold=2", "--same"]) == 0
    assert _stdout_lines(capsys) == ["0,0+20x20"]

    assert cli_main([old, new, "--threshold=0"]) == 0
    assert _stdout_lines(capsys) == ["0,0+20x20"]

    assert cli_main([old, new, "--threshold=1%", "--same"]) == 0
    assert _stdout_lines(capsys) == ["0,0+20x20"]


def test_threshold_values():
    assert threshold_value("3") == 3.0
    assert threshold_value("50%") == 128.0
    assert threshold_value("0%") == 0.0


@pytest.mark.parametrize(
    "extra",
    [
        ["--range=0"],
        ["--range=abc"],
        ["--min-size=-3"],
        ["--threshold=-1"],
        ["--threshold=nan"],
        ["--bogus"],
        ["third.png"],
    ],
)
def test_bad_arguments_exit_with_one(identical_pair, extra, capsys):
    with pytest.raises(SystemExit) as exc:
        cli_main([*identical_pair, *extra])
    assert exc.value.code == 1
    assert "error" in capsys.readouterr().err


def test_missing_positional_exits_with_one(identical_pair):
    with pytest.raises(SystemExit) as exc:
        cli_main([identical_pair[0]])
    assert exc.value.code == 1


def test_help_exits_cleanly(capsys):
    with pytest.raises(SystemExit) as exc:
        cli_main(["--help"])
    assert exc.value.code == 0
    assert "--min-size" in capsys.readouterr().out


def test_undecodable_image(tmp_path, identical_pair, capsys):
    junk = tmp_path / "junk.png"
    junk.write_text("not an image")

    assert cli_main([identical_pair[0], str(junk)]) == 1
    assert capsys.readouterr().err.strip() == f"Failed to decode {junk}"


def test_size_mismatch(tmp_path, identical_pair, capsys):
    small = _save(tmp_path / "small.png", _gradient(50, 40))

    assert cli_main([identical_pair[0], small]) == 1
    assert capsys.readouterr().err.strip() == "Images have different sizes: 100x100 vs 50x40"


def test_grayscale_and_rgb_inputs_are_accepted(tmp_path, capsys):
    gray = np.full((30, 30), 90, dtype=np.uint8)
    rgb = np.full((30, 30, 3), 90, dtype=np.uint8)
    old = tmp_path / "gray.png"
    new = tmp_path / "rgb.png"
    assert cv2.imwrite(str(old), gray)
    assert cv2.imwrite(str(new), rgb)

    assert cli_main([str(old), str(new), "--same"]) == 0
    assert _stdout_lines(capsys) == ["0,0+30x30"]


def test_verbose_traces_go_to_stderr(moved_pair, capsys):
    assert cli_main([*moved_pair, "--range=5", "-v"]) == 0
    captured = capsys.readouterr()
    assert "FOUND AT 0,0+20x10" in captured.err
    assert "level 1:" in captured.err
    assert captured.out.splitlines() == ["0,0+20x10 50,0+20x10", "0,0+20x10"]


def test_dump_images(moved_pair, tmp_path, capsys):
    dump = tmp_path / "dump.png"
    assert cli_main([*moved_pair, "--range=5", "--dump-images", f"--dump-path={dump}"]) == 0

    overlay = cv2.imread(str(dump), cv2.IMREAD_COLOR)
    assert overlay is not None
    assert overlay.shape == (80, 80, 3)
    # unmatched area is tinted green
    b, g, r = overlay[5, 15].tolist()
    assert g > r and g > b
    assert _stdout_lines(capsys) == ["0,0+20x10 50,0+20x10", "0,0+20x10"]


def test_dump_path_without_extension_fails_cleanly(identical_pair, tmp_path, capsys):
    dump = tmp_path / "overlay"
    assert cli_main([*identical_pair, "--dump-images", f"--dump-path={dump}"]) == 1

    captured = capsys.readouterr()
    assert captured.err.strip() == f"could not write {dump}"
    assert captured.out == ""


def test_join_trace_shows_the_merged_rect(moved_pair, capsys):
    assert cli_main([*moved_pair, "--range=5", "-v"]) == 0
    joins = [line for line in capsys.readouterr().err.splitlines() if "was joined" in line]
    assert len(joins) == 1
    assert " 50,0+20x10 was joined with chunk " in joins[0]
    assert joins[0].endswith(" 60,0+10x10")
