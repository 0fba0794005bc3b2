import gzip
import json
import os
import stat

import pytest
import zstandard as zstd

from conftest import BASE_EPOCH_SECONDS, make_document, make_event, make_frame
from jfrflame.common_types import RecordingLoadError
from jfrflame.recording_loader import (
    JfrToolRecording,
    JsonRecording,
    decompress_file,
    load_recording,
    parse_duration,
    parse_event,
    parse_timestamp,
    time_bounds,
)

BASE_NS = BASE_EPOCH_SECONDS * 1_000_000_000


@pytest.mark.parametrize("value,expected", [
    ("2024-01-01T00:00:00Z", BASE_NS),
    ("2024-01-01T00:00:00.5Z", BASE_NS + 500_000_000),
    ("2024-01-01T00:00:00.000000001Z", BASE_NS + 1),
    ("2024-01-01T01:00:00.123456789+01:00", BASE_NS + 123_456_789),
    ("2024-01-01T00:01Z", BASE_NS + 60_000_000_000),
    ("2024-01-01T00:00:00", BASE_NS),
    (42, 42),
])
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


@pytest.mark.parametrize("value", ["yesterday", "2024-01-01", None, 1.5, True])
def test_parse_timestamp_invalid(value):
    with pytest.raises(ValueError):
        parse_timestamp(value)


@pytest.mark.parametrize("value,expected", [
    ("PT0S", 0),
    ("PT0.000123S", 123_000),
    ("PT1M2.5S", 62_500_000_000),
    ("PT2H", 7_200_000_000_000),
    ("P1DT1S", 86_401_000_000_000),
    (None, 0),
    (1500, 1500),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_invalid():
    with pytest.raises(ValueError):
        parse_duration("1 second")


def test_parse_event_keeps_leaf_first_frames():
    entry = make_event(
        "jdk.ThreadPark", "2024-01-01T00:00:00Z", "PT1S",
        frames=[make_frame("a/Leaf", "leaf", 5), make_frame("a/Root", "root", 1)],
    )
    event = parse_event(entry)
    assert event.event_type == "jdk.ThreadPark"
    assert event.start_ns == BASE_NS
    assert event.end_ns == BASE_NS + 1_000_000_000
    assert event.duration_ns == 1_000_000_000
    assert [f.method.type_name for f in event.stack_trace] == ["a.Leaf", "a.Root"]
    assert event.stack_trace[0].line_number == 5


def test_parse_event_without_stack():
    event = parse_event(make_event("jdk.CPULoad", "2024-01-01T00:00:00Z"))
    assert event.stack_trace is None
    assert event.duration_ns == 0
    assert event.end_ns == event.start_ns


@pytest.mark.parametrize("entry", [
    {"type": "jdk.ExecutionSample", "values": {}},
    {"values": {"startTime": "2024-01-01T00:00:00Z"}},
    {"type": "jdk.ExecutionSample", "values": {"startTime": "bad"}},
    {"type": "jdk.ExecutionSample", "values": {
        "startTime": "2024-01-01T00:00:00Z",
        "stackTrace": {"frames": [{"method": {"name": "x", "descriptor": "(Q)V"}}]},
    }},
])
def test_parse_event_invalid(entry):
    with pytest.raises(RecordingLoadError):
        parse_event(entry)


def test_json_recording_catalog_events_and_range(sample_events):
    recording = JsonRecording(make_document(sample_events))
    assert recording.event_types() == {"jdk.ExecutionSample", "jdk.ThreadPark", "jdk.GCPhasePause"}
    assert [e.event_type for e in recording.events({"jdk.ThreadPark"})] == ["jdk.ThreadPark"]
    assert len(list(recording.events())) == 5
    # GCPhasePause 最早开始，ExecutionSample 在 20 秒结束
    assert recording.time_range() == (BASE_NS + 5_000_000_000, BASE_NS + 20_000_000_000)


def test_json_recording_rejects_other_documents():
    with pytest.raises(RecordingLoadError):
        JsonRecording({"events": []})
    with pytest.raises(RecordingLoadError):
        JsonRecording({"recording": {"events": {}}})


def test_time_bounds_empty():
    assert time_bounds([]) is None


def test_load_recording_json(write_recording, sample_events):
    path = write_recording(sample_events, name="recording.jfr.txt")
    recording = load_recording(str(path))
    assert isinstance(recording, JsonRecording)


def test_load_recording_missing_file(tmp_path):
    with pytest.raises(RecordingLoadError):
        load_recording(str(tmp_path / "missing.jfr"))


def test_load_recording_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(RecordingLoadError):
        load_recording(str(path))


def test_decompress_gzip(tmp_path, sample_events):
    payload = json.dumps(make_document(sample_events)).encode("utf-8")
    compressed = tmp_path / "recording.jfr.gz"
    compressed.write_bytes(gzip.compress(payload))

    path = decompress_file(str(compressed))
    try:
        assert os.path.basename(path).startswith("jfr_")
        assert path.endswith(".jfr")
        with open(path, "rb") as f:
            assert f.read() == payload
        assert isinstance(load_recording(path), JsonRecording)
    finally:
        os.remove(path)


def test_decompress_zstd(tmp_path):
    payload = b"binary recording" * 100
    compressed = tmp_path / "recording.jfr.zst"
    compressed.write_bytes(zstd.ZstdCompressor().compress(payload))

    path = decompress_file(str(compressed))
    try:
        assert path.endswith(".jfr")
        with open(path, "rb") as f:
            assert f.read() == payload
    finally:
        os.remove(path)


def test_decompress_unknown_format(tmp_path):
    plain = tmp_path / "recording.jfr"
    plain.write_bytes(b"FLR\x00plain")
    with pytest.raises(RecordingLoadError):
        decompress_file(str(plain))


@pytest.fixture
def fake_jfr_tool(tmp_path, sample_events):
    """一个模拟 JDK jfr 命令的脚本: summary 输出事件表, print 输出 JSON。"""
    summary = tmp_path / "summary.txt"
    summary.write_text(
        "\n"
        " Version: 2.1\n"
        " Chunks: 1\n"
        " Start: 2024-01-01 00:00:05 (UTC)\n"
        " Duration: 15 s\n"
        "\n"
        " Event Type                          Count  Size (bytes)\n"
        "=============================================================\n"
        " jdk.ExecutionSample                     3           120\n"
        " jdk.ThreadPark                          1            60\n"
        " jdk.ThreadSleep                         0             0\n",
        encoding="utf-8",
    )
    events = tmp_path / "events.json"
    events.write_text(json.dumps(make_document(sample_events)), encoding="utf-8")
    calls = tmp_path / "calls.txt"

    script = tmp_path / "jfr"
    script.write_text(
        "#!/bin/sh\n"
        f"echo \"$@\" >> '{calls}'\n"
        "for last in \"$@\"; do :; done\n"
        "case \"$last\" in\n"
        "  *.jfr) ;;\n"
        "  *) echo \"filename must end with .jfr\" >&2; exit 1;;\n"
        "esac\n"
        "if [ \"$1\" = \"summary\" ]; then\n"
        f"  cat '{summary}'\n"
        "else\n"
        f"  cat '{events}'\n"
        "fi\n",
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script, calls


def test_jfr_tool_recording(tmp_path, fake_jfr_tool):
    script, calls = fake_jfr_tool
    recording_path = tmp_path / "recording.jfr"
    recording_path.write_bytes(b"FLR\x00")

    recording = JfrToolRecording(str(recording_path), jfr_tool=str(script))
    assert recording.event_types() == {"jdk.ExecutionSample", "jdk.ThreadPark"}

    events = list(recording.events({"jdk.ExecutionSample"}))
    assert [e.event_type for e in events] == ["jdk.ExecutionSample"] * 3

    lines = calls.read_text(encoding="utf-8").splitlines()
    assert lines[0] == f"summary {recording_path}"
    assert lines[1] == f"print --json --events jdk.ExecutionSample {recording_path}"


def test_jfr_tool_failure_is_load_error(tmp_path):
    script = tmp_path / "jfr"
    script.write_text("#!/bin/sh\necho 'not a recording' >&2\nexit 1\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    recording_path = tmp_path / "recording.jfr"
    recording_path.write_bytes(b"\x1f\x8bcompressed")

    with pytest.raises(RecordingLoadError, match="not a recording"):
        load_recording(str(recording_path), jfr_tool=str(script))


def test_jfr_tool_time_range_from_summary_header(tmp_path, fake_jfr_tool):
    script, calls = fake_jfr_tool
    recording_path = tmp_path / "recording.jfr"
    recording_path.write_bytes(b"FLR\x00")

    recording = JfrToolRecording(str(recording_path), jfr_tool=str(script))
    assert recording.time_range() == (BASE_NS + 5_000_000_000, BASE_NS + 20_000_000_000)
    # 时间范围来自 summary 头部，不需要额外执行 jfr print
    assert calls.read_text(encoding="utf-8").splitlines() == [f"summary {recording_path}"]


def test_jfr_tool_time_range_without_header_scans_events(tmp_path, fake_jfr_tool):
    script, calls = fake_jfr_tool
    (tmp_path / "summary.txt").write_text(
        " Event Type                          Count  Size (bytes)\n"
        "=============================================================\n"
        " jdk.ExecutionSample                     3           120\n",
        encoding="utf-8",
    )
    recording_path = tmp_path / "recording.jfr"
    recording_path.write_bytes(b"FLR\x00")

    recording = JfrToolRecording(str(recording_path), jfr_tool=str(script))
    assert recording.time_range() == (BASE_NS + 5_000_000_000, BASE_NS + 20_000_000_000)
    assert calls.read_text(encoding="utf-8").splitlines()[1] == f"print --json {recording_path}"


def test_decompressed_binary_recording_is_accepted_by_jfr_tool(tmp_path, fake_jfr_tool):
    script, calls = fake_jfr_tool
    compressed = tmp_path / "recording.jfr.gz"
    compressed.write_bytes(gzip.compress(b"FLR\x00binary chunk"))

    path = decompress_file(str(compressed))
    try:
        recording = load_recording(path, jfr_tool=str(script))
        assert isinstance(recording, JfrToolRecording)
        assert recording.event_types() == {"jdk.ExecutionSample", "jdk.ThreadPark"}
        assert calls.read_text(encoding="utf-8").splitlines() == [f"summary {path}"]
    finally:
        os.remove(path)


def test_jfr_tool_rejects_name_without_jfr_suffix(tmp_path, fake_jfr_tool):
    script, _ = fake_jfr_tool
    recording_path = tmp_path / "recording.bin"
    recording_path.write_bytes(b"FLR\x00")

    with pytest.raises(RecordingLoadError, match="must end with .jfr"):
        load_recording(str(recording_path), jfr_tool=str(script))
