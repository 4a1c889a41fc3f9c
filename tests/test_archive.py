"""Tests for export archive creation and safe extraction."""

from __future__ import annotations

import io
import json
import tarfile
import tempfile
import unittest
from pathlib import Path

from chat_porter.archive import (
    MANIFEST_FORMAT,
    ArchiveError,
    create_export_archive,
    extract_export_archive,
    read_manifest,
)
from chat_porter.workspace_index import WorkspaceIndex


def _make_storage(root: Path) -> WorkspaceIndex:
    one = root / "aaa"
    (one / "chatSessions").mkdir(parents=True)
    (one / "workspace.json").write_text(json.dumps({"folder": "file:///home/u/app"}), encoding="utf-8")
    (one / "state.vscdb").write_bytes(b"SQLite format 3\x00")
    (one / "chatSessions" / "s1.json").write_text('{"id": 1}', encoding="utf-8")
    (one / "empty").mkdir()

    two = root / "bbb"
    two.mkdir()
    (two / "workspace.json").write_text(
        json.dumps({"folder": "vscode-remote://wsl%2Bubuntu/home/u/api"}), encoding="utf-8"
    )
    return WorkspaceIndex.build(root)


def _write_tar(path: Path, members: list[tarfile.TarInfo]) -> None:
    with tarfile.open(path, "w:gz") as tar:
        for info in members:
            if info.isfile():
                tar.addfile(info, io.BytesIO(b"x" * info.size))
            else:
                tar.addfile(info)


def _file_member(name: str, size: int = 1) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.size = size
    return info


class ArchiveRoundTripTest(unittest.TestCase):
    def test_export_then_extract(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            tmp_path = Path(tmp)
            index = _make_storage(tmp_path / "storage")
            archive = tmp_path / "out" / "chats.tar.gz"

            stats = create_export_archive(index.entries, archive)
            self.assertTrue(archive.is_file())
            self.assertFalse(archive.with_name(archive.name + ".partial").exists())
            self.assertEqual(stats.workspaces, 2)
            self.assertEqual(stats.files, 4)

            extracted = extract_export_archive(archive, tmp_path / "extracted")
            manifest = read_manifest(extracted)
            self.assertEqual(manifest["format"], MANIFEST_FORMAT)
            self.assertEqual([w["folder_id"] for w in manifest["workspaces"]], ["aaa", "bbb"])

            self.assertEqual((extracted / "aaa" / "state.vscdb").read_bytes(), b"SQLite format 3\x00")
            self.assertEqual((extracted / "aaa" / "chatSessions" / "s1.json").read_text(encoding="utf-8"), '{"id": 1}')
            self.assertTrue((extracted / "aaa" / "empty").is_dir())

            exported = WorkspaceIndex.build(extracted)
            self.assertEqual([e.folder_id for e in exported], ["aaa", "bbb"])
            self.assertEqual(exported.entries[1].raw_address, "vscode-remote://wsl%2Bubuntu/home/u/api")

    def test_existing_archive_is_not_overwritten_by_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            tmp_path = Path(tmp)
            index = _make_storage(tmp_path / "storage")
            archive = tmp_path / "chats.tar.gz"
            archive.write_bytes(b"previous")

            with self.assertRaises(FileExistsError):
                create_export_archive(index.entries, archive)
            self.assertEqual(archive.read_bytes(), b"previous")

            create_export_archive(index.entries, archive, overwrite=True)
            self.assertTrue(tarfile.is_tarfile(archive))

    def test_archive_without_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            tmp_path = Path(tmp)
            archive = tmp_path / "bare.tar.gz"
            _write_tar(archive, [_file_member("aaa/workspace.json")])
            extracted = extract_export_archive(archive, tmp_path / "x")
            self.assertIsNone(read_manifest(extracted))


class UnsafeArchiveTest(unittest.TestCase):
    def _assert_rejected(self, members: list[tarfile.TarInfo], **kwargs) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            tmp_path = Path(tmp)
            archive = tmp_path / "bad.tar.gz"
            _write_tar(archive, members)
            target = tmp_path / "target"
            with self.assertRaises(ArchiveError):
                extract_export_archive(archive, target, **kwargs)
            # * Validation happens before anything is written.
            self.assertFalse(target.exists())
            self.assertFalse((tmp_path / "evil.txt").exists())

    def test_rejects_path_traversal(self) -> None:
        self._assert_rejected([_file_member("aaa/ok.txt"), _file_member("../evil.txt")])

    def test_rejects_absolute_paths(self) -> None:
        self._assert_rejected([_file_member("/tmp/evil.txt")])

    def test_rejects_links(self) -> None:
        link = tarfile.TarInfo("aaa/link")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        self._assert_rejected([link])

    def test_rejects_oversized_archives(self) -> None:
        self._assert_rejected([_file_member("aaa/big.bin", size=64)], max_size_bytes=32)

    def test_missing_archive(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ArchiveError):
                extract_export_archive(Path(tmp) / "missing.tar.gz", Path(tmp) / "x")

    def test_corrupt_archive(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            archive = Path(tmp) / "corrupt.tar.gz"
            archive.write_bytes(b"not a tar file at all")
            with self.assertRaises(ArchiveError):
                extract_export_archive(archive, Path(tmp) / "x")


if __name__ == "__main__":
    unittest.main()
