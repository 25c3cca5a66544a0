from __future__ import annotations

import io

from filegate.services import file_ops
from filegate.services.file_ops import FileOps, unique_path


def test_unique_path_returns_free_path_unchanged(tmp_path):
    desired = tmp_path / 'report.pdf'

    assert unique_path(desired) == desired


def test_unique_path_skips_taken_suffixes(tmp_path):
    for name in ('report.pdf', 'report (1).pdf', 'report (2).pdf'):
        (tmp_path / name).write_bytes(b'x')

    assert unique_path(tmp_path / 'report.pdf') == tmp_path / 'report (3).pdf'


def test_unique_path_handles_names_without_extension(tmp_path):
    (tmp_path / 'notes').mkdir()

    assert unique_path(tmp_path / 'notes') == tmp_path / 'notes (1)'


def test_unique_path_keeps_last_suffix_only(tmp_path):
    (tmp_path / 'archive.tar.gz').write_bytes(b'x')

    assert unique_path(tmp_path / 'archive.tar.gz') == tmp_path / 'archive.tar (1).gz'


def test_save_upload_never_overwrites(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'a.txt').write_bytes(b'old')

    saved = ops.save_upload('', 'a.txt', io.BytesIO(b'new'))

    assert saved.name == 'a (1).txt'
    assert (tmp_path / 'a.txt').read_bytes() == b'old'
    assert saved.read_bytes() == b'new'


def test_save_upload_reallocates_when_name_is_claimed_after_check(tmp_path, monkeypatch):
    ops = FileOps(str(tmp_path))
    real_unique_path = file_ops.unique_path
    calls = []

    def _racy_unique_path(desired):
        found = real_unique_path(desired)
        if not calls:
            # a concurrent writer creates the file right after the check
            found.write_bytes(b'other writer')
        calls.append(found)
        return found

    monkeypatch.setattr(file_ops, 'unique_path', _racy_unique_path)

    saved = ops.save_upload('', 'a.txt', io.BytesIO(b'mine'))

    assert calls[0].name == 'a.txt'
    assert saved.name == 'a (1).txt'
    assert (tmp_path / 'a.txt').read_bytes() == b'other writer'
    assert saved.read_bytes() == b'mine'
