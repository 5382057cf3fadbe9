from app.packages.knohub.utils.name_utils import (
    display_name_from_storage,
    extract_extension,
    format_file_size,
    normalize_upload_name,
    pin_extension,
    storage_prefix,
)


def test_extract_extension_edge_cases():
    assert extract_extension("report.final.PDF") == "PDF"
    assert extract_extension(".bashrc") == ""
    assert extract_extension("notes.") == ""
    assert extract_extension("README") == ""
    assert extract_extension(None) == ""


def test_normalize_upload_name():
    assert normalize_upload_name("C:\\Users\\me\\a.txt") == "a.txt"
    assert normalize_upload_name("dir/sub/b.txt") == "b.txt"
    assert normalize_upload_name("   ") == "unnamed_file"
    assert normalize_upload_name(None) == "unnamed_file"


def test_pin_extension():
    assert pin_extension("report.txt", "pdf") == "report.pdf"
    assert pin_extension("report", "pdf") == "report.pdf"
    assert pin_extension("Report.PDF", "pdf") == "Report.PDF"
    assert pin_extension("anything.md", None) == "anything.md"


def test_storage_name_helpers():
    assert storage_prefix("abc123_notes.txt") == "abc123"
    assert display_name_from_storage("abc123_my_notes.txt") == "my_notes.txt"
    assert display_name_from_storage("plain.txt") == "plain.txt"
    assert len(storage_prefix("nounderscore")) == 32


def test_format_file_size():
    assert format_file_size(0) == "0B"
    assert format_file_size(1023) == "1023B"
    assert format_file_size(1536) == "1.5KB"
    assert format_file_size(5 * 1024 * 1024) == "5.0MB"
    assert format_file_size(3 * 1024 ** 3) == "3.0GB"
