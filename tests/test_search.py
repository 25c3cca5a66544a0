from __future__ import annotations

import logging
import os

from filegate.services import file_ops
from filegate.services.file_ops import FileOps


def _tree(root):
    for folder in ('a', 'b', 'c'):
        (root / folder).mkdir()
    (root / 'a' / 'report.pdf').write_text('pdf')
    (root / 'b' / 'Report2024.txt').write_text('txt')
    (root / 'c' / 'readme.txt').write_text('readme')


def test_search_is_case_insensitive_substring(tmp_path):
    _tree(tmp_path)

    results = FileOps(str(tmp_path)).search('report')

    assert [r['path'] for r in results] == ['a/report.pdf', 'b/Report2024.txt']
    assert all('\\' not in r['path'] for r in results)


def test_search_emits_matching_folders_and_visits_their_children(tmp_path):
    (tmp_path / 'Reports' / 'q1').mkdir(parents=True)
    (tmp_path / 'Reports' / 'q1' / 'summary.txt').write_text('s')
    (tmp_path / 'Reports' / 'q1' / 'report-final.txt').write_text('r')

    results = FileOps(str(tmp_path)).search('REPORT')

    assert [r['path'] for r in results] == ['Reports', 'Reports/q1/report-final.txt']
    assert results[0]['is_folder'] is True
    assert results[0]['size'] == '--'


def test_search_no_matches(tmp_path):
    _tree(tmp_path)

    assert FileOps(str(tmp_path)).search('zzz') == []


def test_search_skips_unreadable_subtree(tmp_path, monkeypatch, caplog):
    _tree(tmp_path)
    (tmp_path / 'b' / 'deep').mkdir()
    (tmp_path / 'b' / 'deep' / 'report-hidden.txt').write_text('x')
    blocked = str(tmp_path / 'b')
    real_scandir = os.scandir

    def _scandir(path):
        if str(path) == blocked:
            raise PermissionError(13, 'Permission denied', blocked)
        return real_scandir(path)

    monkeypatch.setattr(file_ops.os, 'scandir', _scandir)

    with caplog.at_level(logging.WARNING, logger='filegate.services.file_ops'):
        results = FileOps(str(tmp_path)).search('report')

    assert [r['path'] for r in results] == ['a/report.pdf']
    assert 'Skipping unreadable directory' in caplog.text


def test_search_does_not_follow_symlinked_directories(tmp_path):
    root = tmp_path / 'root'
    outside = tmp_path / 'outside'
    root.mkdir()
    outside.mkdir()
    (outside / 'report.txt').write_text('x')
    (root / 'link').symlink_to(outside, target_is_directory=True)

    assert FileOps(str(root)).search('report') == []


def test_search_includes_locked_folder_contents_by_default(tmp_path):
    (tmp_path / 'secret').mkdir()
    (tmp_path / 'secret' / 'plan.txt').write_text('x')

    results = FileOps(str(tmp_path), locked_folders=['secret']).search('plan')

    assert [r['path'] for r in results] == ['secret/plan.txt']


def test_search_can_respect_folder_locks(tmp_path):
    (tmp_path / 'secret').mkdir()
    (tmp_path / 'secret' / 'plan.txt').write_text('x')
    (tmp_path / 'open').mkdir()
    (tmp_path / 'open' / 'plan.txt').write_text('x')

    ops = FileOps(str(tmp_path), locked_folders=['/secret/'], search_respects_locks=True)

    assert [r['path'] for r in ops.search('plan')] == ['open/plan.txt']
