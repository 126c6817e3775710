import pytest

from docrag.errors import ConfigError, LibraryFileNotFound, LibraryPathError
from docrag.library import FileMeta, LibraryFiles, ensure_library_dir, extension_of, parse_extensions


class TestParseExtensions:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("txt, .MD ,,csv", {"txt", "md", "csv"}),
            (["PDF", " .docx", ""], {"pdf", "docx"}),
            ("", set()),
            (None, set()),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_extensions(value) == expected

    def test_extension_of(self):
        assert extension_of("a/b/Report.PDF") == "pdf"
        assert extension_of("archive.tar.gz") == "gz"
        assert extension_of("Makefile") == ""


class TestLibraryFiles:
    def test_lists_recursively_sorted(self, files, write_file):
        write_file("b.txt", "b")
        write_file("a/z.md", "z")
        write_file("a/c.csv", "x,y")

        paths = [e.relative_path for e in files.list_files()]

        assert paths == ["a/c.csv", "a/z.md", "b.txt"]

    def test_extension_filter(self, files, write_file):
        write_file("a.txt", "a")
        write_file("b.md", "b")
        write_file("c.pdf", "c")

        assert [e.relative_path for e in files.list_files(["md"])] == ["b.md"]
        assert [e.relative_path for e in files.list_files(set())] == ["a.txt", "b.md", "c.pdf"]

    def test_hidden_directories_skipped(self, files, write_file):
        write_file(".git/config.txt", "x")
        write_file("visible.txt", "y")
        assert files.live_sources() == {"visible.txt"}

    def test_entries_carry_metadata(self, files, write_file):
        write_file("a.txt", "hello")
        entry = files.list_files()[0]
        assert entry.size == 5
        assert entry.meta == FileMeta(5, entry.mtime_ns)
        assert files.stat("a.txt") == entry.meta

    def test_missing_root_lists_nothing(self, tmp_path):
        assert LibraryFiles(tmp_path / "nope", ["txt"]).list_files() == []

    @pytest.mark.parametrize("path", ["../secret.txt", "a/../../secret.txt", "/etc/passwd", "C:/Windows/win.ini"])
    def test_normalize_rejects_escapes(self, files, path):
        with pytest.raises(LibraryPathError):
            files.normalize_relative(path)

    @pytest.mark.parametrize("path", ["", "   "])
    def test_normalize_rejects_blank(self, files, path):
        with pytest.raises(LibraryPathError):
            files.normalize_relative(path)

    def test_normalize_converts_backslashes(self, files):
        assert files.normalize_relative(" docs\\notes\\a.txt ") == "docs/notes/a.txt"

    @pytest.mark.parametrize(
        "path, expected",
        [("x/../a.txt", "a.txt"), ("./docs/./b.md", "docs/b.md"), ("docs//c.txt", "docs/c.txt"), ("docs\\..\\d.txt", "d.txt")],
    )
    def test_normalize_collapses_dot_segments(self, files, path, expected):
        assert files.normalize_relative(path) == expected

    @pytest.mark.parametrize("path", [".", "docs/..", "./"])
    def test_normalize_rejects_root_itself(self, files, path):
        with pytest.raises(LibraryPathError):
            files.normalize_relative(path)

    def test_require_file(self, files, write_file, library_dir):
        write_file("a.txt", "x")
        (library_dir / "folder").mkdir()

        assert files.require_file("a.txt") == (library_dir / "a.txt").resolve()
        with pytest.raises(LibraryFileNotFound):
            files.require_file("missing.txt")
        with pytest.raises(LibraryFileNotFound):
            files.require_file("folder")


class TestEnsureLibraryDir:
    def test_creates_missing_directory(self, tmp_path):
        target = tmp_path / "new" / "library"
        assert ensure_library_dir(target) == target.absolute()
        assert target.is_dir()

    def test_existing_directory(self, library_dir):
        assert ensure_library_dir(library_dir) == library_dir.absolute()

    def test_file_in_the_way(self, tmp_path):
        blocker = tmp_path / "library"
        blocker.write_text("not a dir", encoding="utf-8")
        with pytest.raises(ConfigError):
            ensure_library_dir(blocker)
