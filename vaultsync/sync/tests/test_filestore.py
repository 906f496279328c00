import os

import pytest

from vaultsync.common.errors import DiskIOError, PathNotFound, PathOutsideVault
from vaultsync.sync.filestore import LocalFileStore


@pytest.fixture
def store(tmp_path):
    return LocalFileStore(str(tmp_path))


def test_relative_keys_are_normalized(store, tmp_path):
    assert store.relative('notes/a.md') == 'notes/a.md'
    assert store.relative('./notes//a.md') == 'notes/a.md'
    assert store.relative('notes\\a.md') == 'notes/a.md'
    assert store.relative(str(store.root / 'notes' / 'a.md')) == 'notes/a.md'


def test_paths_outside_vault_are_refused(store, tmp_path):
    with pytest.raises(PathOutsideVault):
        store.resolve('../escape.md')
    with pytest.raises(PathOutsideVault):
        store.resolve(str(tmp_path.parent / 'elsewhere.md'))
    with pytest.raises(PathOutsideVault):
        store.resolve('')


def test_symlink_escape_is_refused(store, tmp_path_factory, tmp_path):
    outside = tmp_path_factory.mktemp('outside')
    os.symlink(outside, tmp_path / 'link')
    with pytest.raises(PathOutsideVault):
        store.resolve('link/secret.md')


def test_write_requires_parent(store):
    with pytest.raises(PathNotFound):
        store.write('missing/dir/a.md', 'x')


def test_write_read_roundtrip_and_mkdir_idempotent(store):
    store.mkdir_recursive('a/b')
    store.mkdir_recursive('a/b')
    store.write('a/b/c.md', 'x')
    assert store.read('a/b/c.md') == 'x'
    assert store.exists('a/b/c.md')
    assert store.is_dir('a/b')


def test_mkdir_over_file_fails(store):
    store.write('file.md', 'x')
    with pytest.raises(DiskIOError):
        store.mkdir_recursive('file.md')


def test_read_missing_file(store):
    with pytest.raises(PathNotFound):
        store.read('nope.md')


def test_move_file_into_existing_directory(store):
    store.write('a.md', 'x')
    store.mkdir_recursive('archive')
    assert store.move('a.md', 'archive') == 'archive/a.md'
    assert store.read('archive/a.md') == 'x'
    assert not store.exists('a.md')


def test_move_creates_destination_parents(store):
    store.write('a.md', 'x')
    assert store.move('a.md', 'deep/er/b.md') == 'deep/er/b.md'


def test_move_refuses_overwrite_and_missing_source(store):
    store.write('a.md', 'x')
    store.write('b.md', 'y')
    with pytest.raises(DiskIOError):
        store.move('a.md', 'b.md')
    with pytest.raises(PathNotFound):
        store.move('ghost.md', 'c.md')
    assert store.read('b.md') == 'y'


def test_move_directory_into_itself_is_refused(store):
    store.mkdir_recursive('dir/sub')
    with pytest.raises(DiskIOError):
        store.move('dir', 'dir/sub/inner')


def test_list_files(store):
    store.mkdir_recursive('dir/sub')
    store.write('dir/a.md', '1')
    store.write('dir/sub/b.md', '2')
    store.write('top.md', '3')
    assert store.list_files('dir') == ['dir/a.md', 'dir/sub/b.md']
    assert store.list_files() == ['dir/a.md', 'dir/sub/b.md', 'top.md']
