import pytest

from dclpipe import filelist


def test_is_dir(tmp_path):
    file_path = tmp_path / "f.txt"
    file_path.write_text("x")
    assert filelist.is_dir(str(tmp_path)) is True
    assert filelist.is_dir(str(file_path)) is False
    assert filelist.is_dir(str(tmp_path / "missing")) is False


def test_get_extension():
    assert filelist.get_extension("dir/image.tiff") == ".tiff"
    assert filelist.get_extension("noext") is None


@pytest.mark.parametrize(
    "name, ext, expected",
    [
        ("frame.TIFF", "tiff", True),
        ("frame.tiff", "tiff", True),
        ("frame.png", "tiff", False),
        ("frame", "tiff", False),
    ],
)
def test_is_filter_ok(name, ext, expected):
    assert filelist.is_filter_ok(name, ext) is expected


def test_get_id_parses_number_after_last_underscore():
    assert filelist.get_id("dir_1/frame_12.png") == 12
    assert filelist.get_id("cam_a_7") == 7


def test_get_id_without_number():
    assert filelist.get_id("noid.png") == -1
    assert filelist.get_id("frame_x.png") == -1


def test_get_dirname():
    assert filelist.get_dirname("a/b/c.txt") == ("a/b", "c.txt")
    assert filelist.get_dirname("c.txt") == (".", "c.txt")


def test_split_filename():
    assert filelist.split_filename("dir/sub/name.tar.gz") == ("dir/sub", "name.tar", "gz")
    assert filelist.split_filename("name") == (".", "name", None)


def test_generate_and_split_round_trip():
    name = filelist.generate_filename("out", "frame_3", "bmp")
    assert name == "out/frame_3.bmp"
    assert filelist.split_filename(name) == ("out", "frame_3", "bmp")


def test_sort_filelist_orders_by_id():
    files = ["d/f_10.png", "d/f_2.png", "d/f_1.png"]
    result = filelist.sort_filelist(files)
    assert result == ["d/f_1.png", "d/f_2.png", "d/f_10.png"]
    assert sorted(result) == sorted(files)


def test_get_filelist_directory_with_filter(tmp_path):
    for name in ("a_1.tiff", "b_2.TIFF", "c_3.png"):
        (tmp_path / name).write_text(name)
    result = filelist.get_filelist(str(tmp_path), "tiff")
    assert result == [f"{tmp_path}/a_1.tiff", f"{tmp_path}/b_2.TIFF"]


def test_get_filelist_without_filter(tmp_path):
    for name in ("x_1", "y_2"):
        (tmp_path / name).write_text(name)
    assert filelist.get_filelist(str(tmp_path)) == [f"{tmp_path}/x_1", f"{tmp_path}/y_2"]


def test_get_filelist_single_file(tmp_path):
    file_path = tmp_path / "single.bin"
    file_path.write_bytes(b"\x00")
    assert filelist.get_filelist(str(file_path)) == [str(file_path)]


def test_get_filelist_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        filelist.get_filelist(str(tmp_path / "nothing"))