import json

import pytest

# 2024-01-01T00:00:00Z
BASE_EPOCH_SECONDS = 1704067200


def make_frame(type_name, method, line=None, descriptor="()V"):
    frame = {
        "method": {
            "type": {"name": type_name},
            "name": method,
            "descriptor": descriptor,
        },
        "bytecodeIndex": 0,
        "type": "JIT compiled",
    }
    if line is not None:
        frame["lineNumber"] = line
    return frame


def make_event(event_type, start, duration=None, frames=None):
    """frames 与 jfr 的输出一致: 叶子帧在前。"""
    values = {"startTime": start}
    if duration is not None:
        values["duration"] = duration
    if frames is not None:
        values["stackTrace"] = {"truncated": False, "frames": frames}
    return {"type": event_type, "values": values}


def make_document(events):
    return {"recording": {"events": events}}


@pytest.fixture
def write_recording(tmp_path):
    def _write(events, name="recording.json"):
        path = tmp_path / name
        path.write_text(json.dumps(make_document(events)), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def sample_events():
    main_frame = make_frame("com/example/App", "main", 10, "([Ljava/lang/String;)V")
    work_frame = make_frame("com/example/Worker", "work", 20)
    compute_frame = make_frame("com/example/Worker", "compute", 30, "(I)J")
    park_frame = make_frame("jdk/internal/misc/Unsafe", "park", None, "(ZJ)V")
    return [
        make_event("jdk.ExecutionSample", "2024-01-01T00:00:10Z",
                   frames=[compute_frame, work_frame, main_frame]),
        make_event("jdk.ExecutionSample", "2024-01-01T00:00:11.5Z",
                   frames=[compute_frame, work_frame, main_frame]),
        make_event("jdk.ExecutionSample", "2024-01-01T00:00:20Z",
                   frames=[work_frame, main_frame]),
        make_event("jdk.ThreadPark", "2024-01-01T00:00:12Z", "PT2.5S",
                   frames=[park_frame, work_frame, main_frame]),
        make_event("jdk.GCPhasePause", "2024-01-01T00:00:05Z", "PT0.01S"),
    ]
