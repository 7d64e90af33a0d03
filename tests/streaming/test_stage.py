import logging
import os
import stat
import sys

import pytest

from mkdirp_pipeline.creation import RecursiveDirectoryCreator
from mkdirp_pipeline.errors import CreationCause, DirectoryCreationError, ResolverError, StageAbortedError
from mkdirp_pipeline.settings import PROCESS_UMASK
from mkdirp_pipeline.streaming import (
    StageState,
    Target,
    callback_resolver,
    field_resolver,
    mkdirp_stream,
    mkdirp_stream_obj,
)


def statmode(path):
    return stat.S_IMODE(os.lstat(path).st_mode) & 0o777


def test_takes_a_fixed_directory(output_base):
    outdir = output_base / "foo"

    assert list(mkdirp_stream(outdir)(["test"])) == ["test"]
    assert outdir.is_dir()


def test_resolver_receives_each_item(output_base):
    outdir = output_base / "foo"
    seen = []

    def resolver(item):
        seen.append(item)
        return outdir

    assert list(mkdirp_stream(resolver)(["test"])) == ["test"]
    assert seen == ["test"]
    assert outdir.is_dir()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_resolver_mode_applies_to_the_leaf(output_base):
    outdir = output_base / "foo"

    def resolver(item):
        assert item == "test"
        return outdir, 0o700

    output = list(mkdirp_stream(resolver)(["test"]))

    assert output == ["test"]
    assert output_base.is_dir()
    assert statmode(outdir) == 0o700 & ~PROCESS_UMASK


def test_value_mode_defaults_to_items_as_paths(output_base):
    items = [str(output_base / "a"), output_base / "b" / "c", str(output_base / "a")]

    assert list(mkdirp_stream()(items)) == items
    assert (output_base / "a").is_dir()
    assert (output_base / "b" / "c").is_dir()


def test_object_mode_forwards_records_unchanged(output_base):
    record = {"dirname": str(output_base / "foo"), "payload": [1, 2, 3]}

    def resolver(chunk):
        assert isinstance(chunk, dict)
        return chunk["dirname"]

    output = list(mkdirp_stream_obj(resolver)([record]))

    assert output == [{"dirname": str(output_base / "foo"), "payload": [1, 2, 3]}]
    assert output[0] is record
    assert (output_base / "foo").is_dir()


def test_object_mode_requires_a_target():
    with pytest.raises(TypeError):
        mkdirp_stream_obj(None)


def test_stage_rejects_invalid_default_mode():
    with pytest.raises(ValueError):
        mkdirp_stream("/out", mode=0o20000)


def test_resolver_error_aborts_the_sequence(output_base):
    outdir = output_base / "foo"
    calls = []

    def resolver(item):
        calls.append(item)
        if item == "b":
            raise ValueError("boom")
        return output_base / item

    stage = mkdirp_stream(resolver)
    forwarded = []
    with pytest.raises(ResolverError) as excinfo:
        for item in stage(["a", "b", "c"]):
            forwarded.append(item)

    assert forwarded == ["a"]
    assert calls == ["a", "b"]
    assert excinfo.value.item_index == 1
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert not (output_base / "b").exists()
    assert not outdir.exists()
    assert stage.state is StageState.ABORTED


def test_falsy_path_skips_creation_but_forwards(recording_fs, recording_creator):
    stage = mkdirp_stream(lambda item: None, creator=recording_creator)

    assert list(stage(["test"])) == ["test"]
    assert recording_fs.mkdir_calls == []
    assert stage.stats.skipped == 1
    assert stage.stats.forwarded == 1


def test_mkdir_errors_bubble_up(output_base, failing_creator):
    outdir = output_base / "foo"
    stage = mkdirp_stream(outdir, creator=failing_creator())
    forwarded = []

    with pytest.raises(DirectoryCreationError) as excinfo:
        for item in stage(["test"]):
            forwarded.append(item)

    assert excinfo.value.cause is CreationCause.OTHER
    assert forwarded == []
    assert not outdir.exists()
    assert stage.state is StageState.ABORTED


def test_aborted_stage_refuses_more_work(output_base):
    blocker = output_base / "file"
    blocker.write_text("", encoding="utf-8")
    stage = mkdirp_stream(blocker)

    with pytest.raises(DirectoryCreationError):
        list(stage(["test"]))
    with pytest.raises(StageAbortedError):
        list(stage(["again"]))


def test_order_is_preserved_across_skips(output_base):
    items = [f"item{i}" for i in range(10)]

    def resolver(item):
        index = int(item[4:])
        return None if index % 3 == 0 else output_base / f"dir{index % 2}"

    stage = mkdirp_stream(resolver)

    assert list(stage(items)) == items
    assert stage.stats.skipped == 4
    assert stage.stats.created == 2
    assert stage.state is StageState.IDLE


def test_default_mode_and_resolver_mode(output_base, recording_fs):
    creator = RecursiveDirectoryCreator(recording_fs, umask=0)

    def resolver(item):
        if item == "custom":
            return Target(output_base / item, 0o750)
        return output_base / item

    list(mkdirp_stream(resolver, mode=0o711, creator=creator)(["plain", "custom"]))

    modes = dict(recording_fs.mkdir_calls)
    assert modes[str(output_base / "plain")] == 0o711
    assert modes[str(output_base / "custom")] == 0o750


def test_state_tracks_the_item_in_flight(output_base):
    states = []
    stage = None

    def resolver(item):
        states.append(stage.state)
        return output_base / item

    stage = mkdirp_stream(resolver)
    for _ in stage(["a"]):
        states.append(stage.state)

    assert states == [StageState.RESOLVING, StageState.FORWARDING]
    assert stage.state is StageState.IDLE


def test_closing_early_stops_further_work(output_base):
    calls = []

    def resolver(item):
        calls.append(item)
        return output_base / item

    stage = mkdirp_stream(resolver)
    stream = stage(["a", "b", "c"])

    assert next(stream) == "a"
    stream.close()

    assert calls == ["a"]
    assert not (output_base / "b").exists()
    assert stage.state is StageState.IDLE
    assert list(stage(["d"])) == ["d"]


def test_one_sequence_at_a_time(output_base):
    stage = mkdirp_stream(output_base / "foo")
    first = stage(["a", "b"])
    next(first)

    with pytest.raises(RuntimeError):
        next(stage(["c"]))

    assert list(first) == ["b"]


def test_non_path_items_fail_in_value_mode():
    with pytest.raises(ResolverError):
        list(mkdirp_stream()([42]))


def test_nul_byte_item_aborts_with_creation_error(output_base):
    stage = mkdirp_stream()

    with pytest.raises(DirectoryCreationError) as excinfo:
        list(stage([str(output_base / "bad\x00name")]))

    assert excinfo.value.cause is CreationCause.INVALID_PATH
    assert stage.state is StageState.ABORTED


def test_constructors_pick_the_item_mode(output_base, caplog):
    assert mkdirp_stream().kind == "value-mode"
    stage = mkdirp_stream_obj(field_resolver("dirname"))
    assert stage.kind == "object-mode"

    with caplog.at_level(logging.INFO, logger="mkdirp_pipeline.streaming.stage"):
        list(stage([{"dirname": str(output_base / "foo")}]))

    assert "object-mode" in caplog.text


def test_async_resolver_needs_aprocess(output_base):
    async def resolver(item):
        return output_base / item

    with pytest.raises(ResolverError, match="aprocess"):
        list(mkdirp_stream(resolver)(["test"]))
    assert not (output_base / "test").exists()


def test_callback_resolver_in_a_stage(output_base):
    def resolver(chunk, done):
        done(None, chunk["dirname"])

    records = [{"dirname": str(output_base / "foo")}]

    assert list(mkdirp_stream_obj(callback_resolver(resolver))(records)) == records
    assert (output_base / "foo").is_dir()


def test_callback_error_aborts(output_base):
    stage = mkdirp_stream(callback_resolver(lambda item, done: done(RuntimeError("boom"))))

    with pytest.raises(ResolverError):
        list(stage(["test"]))
    assert not (output_base / "foo").exists()


def test_field_resolver_with_records(output_base):
    records = [{"dirname": str(output_base / "x")}, {"dirname": None}, {"dirname": str(output_base / "y")}]
    stage = mkdirp_stream_obj(field_resolver("dirname"))

    assert list(stage(records)) == records
    assert stage.stats.skipped == 1
    assert (output_base / "x").is_dir()
    assert (output_base / "y").is_dir()
