import errno
import os

import pytest

from mkdirp_pipeline.creation import OsFileSystem, RecursiveDirectoryCreator


class RecordingFileSystem(OsFileSystem):
    """Real filesystem that remembers every mkdir call."""

    def __init__(self):
        self.mkdir_calls = []

    def mkdir(self, path, mode):
        self.mkdir_calls.append((path, mode))
        super().mkdir(path, mode)


class FailingFileSystem(OsFileSystem):
    """Every mkdir fails with the configured error; stat still sees the real tree."""

    def __init__(self, error):
        self.error = error
        self.mkdir_calls = []

    def mkdir(self, path, mode):
        self.mkdir_calls.append((path, mode))
        raise self.error


@pytest.fixture
def output_base(tmp_path):
    base = tmp_path / "out-fixtures"
    base.mkdir()
    # Linux propagates setgid from the parent, which would skew mode assertions.
    os.chmod(base, 0o777)
    return base


@pytest.fixture
def recording_fs():
    return RecordingFileSystem()


@pytest.fixture
def recording_creator(recording_fs):
    return RecursiveDirectoryCreator(recording_fs)


@pytest.fixture
def failing_creator():
    def build(code=errno.EIO, message="boom"):
        fs = FailingFileSystem(OSError(code, message))
        return RecursiveDirectoryCreator(fs)

    return build
