"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# recording_loader.py
import gzip
import json
import os
import re
import shutil
import subprocess
import tempfile
from datetime import datetime
from typing import Any, Iterable, Iterator

import zstandard as zstd

from .common_types import Event, Frame, MethodDescriptor, RawStack, RecordingLoadError

import logging
logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

# `jfr print --json` 输出的事件字段
EVENT_VALUE_STACK = "stackTrace"
EVENT_VALUE_START = "startTime"
EVENT_VALUE_DURATION = "duration"

# 例如 2021-05-04T09:44:32.381543709+02:00，秒和小数部分都可能省略
TIMESTAMP_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?)"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)
# 例如 PT0.000123S, PT1M2.5S, P1DT2H
DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+)(?:\.(?P<fraction>\d{1,9}))?S)?)?$"
)
# `jfr summary` 事件表中的一行: "<类型>  <数量>  <大小>"
SUMMARY_ROW_PATTERN = re.compile(r"^\s*(?P<name>[\w.$]+)\s+(?P<count>\d+)\s+\d+\s*$")
# `jfr summary` 头部中的录制开始时间 (UTC) 和总时长
SUMMARY_START_PATTERN = re.compile(r"^\s*Start:\s*(?P<start>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})")
SUMMARY_DURATION_PATTERN = re.compile(r"^\s*Duration:\s*(?P<seconds>\d+)\s*s\s*$")


def _fraction_to_nanos(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction.ljust(9, "0"))


def parse_timestamp(value: Any) -> int:
    """将 ISO-8601 时间字符串或整数纳秒转换为自 epoch 起的纳秒数。"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ValueError(f"无效的时间戳: {value!r}")
    m = TIMESTAMP_PATTERN.match(value.strip())
    if not m:
        raise ValueError(f"无效的时间戳: {value!r}")
    tz = m.group("tz")
    # 没有时区信息时按 UTC 处理
    if tz is None or tz == "Z":
        tz = "+00:00"
    dt = datetime.fromisoformat(m.group("base") + tz)
    return int(dt.timestamp()) * 1_000_000_000 + _fraction_to_nanos(m.group("fraction"))


def parse_duration(value: Any) -> int:
    """将 ISO-8601 时长字符串 (PT...S) 或整数纳秒转换为纳秒数。"""
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ValueError(f"无效的时长: {value!r}")
    m = DURATION_PATTERN.match(value.strip())
    if not m:
        raise ValueError(f"无效的时长: {value!r}")
    seconds = (
        int(m.group("days") or 0) * 86400
        + int(m.group("hours") or 0) * 3600
        + int(m.group("minutes") or 0) * 60
        + int(m.group("seconds") or 0)
    )
    return seconds * 1_000_000_000 + _fraction_to_nanos(m.group("fraction"))


def _parse_frame(raw: dict[str, Any]) -> Frame:
    method = raw["method"]
    type_info = method.get("type") or {}
    type_name = type_info.get("name") if isinstance(type_info, dict) else type_info
    descriptor = MethodDescriptor.from_jvm(type_name or "<unknown>", method["name"], method.get("descriptor"))
    line = raw.get("lineNumber")
    return Frame(descriptor, line if isinstance(line, int) else None)


def _parse_stack_trace(raw: dict[str, Any] | None) -> RawStack | None:
    """解析调用栈，保持录制文件中叶子帧在前的顺序。"""
    if not raw:
        return None
    frames = raw.get("frames")
    if frames is None:
        return None
    return tuple(_parse_frame(frame) for frame in frames)


def parse_event(entry: dict[str, Any]) -> Event:
    """
    将 `jfr print --json` 中的一个事件转换为 Event 对象。
    Raises:
        RecordingLoadError: 事件缺少必要字段或字段格式错误。
    """
    try:
        values = entry.get("values") or {}
        start = parse_timestamp(values[EVENT_VALUE_START])
        duration = parse_duration(values.get(EVENT_VALUE_DURATION))
        return Event(
            event_type=entry["type"],
            start_ns=start,
            end_ns=start + duration,
            duration_ns=duration,
            stack_trace=_parse_stack_trace(values.get(EVENT_VALUE_STACK)),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise RecordingLoadError(f"无法解析事件 {entry.get('type', '?') if isinstance(entry, dict) else entry!r}: {e}") from e


def time_bounds(events: Iterable[Event]) -> tuple[int, int] | None:
    """返回事件集合中最早的开始时间和最晚的结束时间，没有事件时返回 None。"""
    min_start = None
    max_end = None
    for event in events:
        if min_start is None or event.start_ns < min_start:
            min_start = event.start_ns
        if max_end is None or event.end_ns > max_end:
            max_end = event.end_ns
    if min_start is None:
        return None
    return min_start, max_end


class Recording:
    """已加载的录制文件。事件流只保证可以完整遍历一次。"""

    def event_types(self) -> set[str]:
        """录制文件中出现的事件类型目录。"""
        raise NotImplementedError

    def events(self, event_types: Iterable[str] | None = None) -> Iterator[Event]:
        """按录制顺序遍历事件，可以提示只需要哪些类型。"""
        raise NotImplementedError

    def time_range(self) -> tuple[int, int]:
        """整个录制文件的时间范围 (纳秒)。"""
        return time_bounds(self.events()) or (0, 0)


class JsonRecording(Recording):
    """`jfr print --json` 导出的录制文件。"""

    def __init__(self, document: Any, source: str = "<memory>"):
        try:
            self._entries = document["recording"]["events"]
        except (KeyError, TypeError) as e:
            raise RecordingLoadError(f"{source} 不是有效的 JFR JSON 导出文件") from e
        if not isinstance(self._entries, list):
            raise RecordingLoadError(f"{source} 中的 events 必须是列表")
        self.source = source

    @classmethod
    def from_file(cls, path: str) -> 'JsonRecording':
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RecordingLoadError(f"无法解析 JSON 文件 {path}: {e}") from e
        return cls(document, source=path)

    def event_types(self) -> set[str]:
        return {entry.get("type") for entry in self._entries if isinstance(entry, dict) and entry.get("type")}

    def events(self, event_types: Iterable[str] | None = None) -> Iterator[Event]:
        wanted = set(event_types) if event_types is not None else None
        for entry in self._entries:
            if wanted is not None and isinstance(entry, dict) and entry.get("type") not in wanted:
                continue
            yield parse_event(entry)


def find_jfr_tool() -> str:
    """在 $JAVA_HOME/bin 或 PATH 中查找 JDK 自带的 jfr 工具。"""
    java_home = os.environ.get("JAVA_HOME")
    if java_home:
        candidate = os.path.join(java_home, "bin", "jfr")
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    found = shutil.which("jfr")
    if found is None:
        raise RecordingLoadError("未找到 jfr 工具，请设置 JAVA_HOME 或将 jfr 加入 PATH")
    return found


class JfrToolRecording(Recording):
    """通过 JDK 的 jfr 命令行工具读取的二进制录制文件。"""

    def __init__(self, path: str, jfr_tool: str | None = None):
        self.path = path
        self.jfr_tool = jfr_tool or find_jfr_tool()
        self._time_range: tuple[int, int] | None = None
        # 加载时立即读取事件类型目录，以便尽早发现无法解析的文件
        self._event_types = self._read_summary()

    def _run(self, *args: str) -> str:
        cmd = [self.jfr_tool, *args, self.path]
        logger.debug(f"执行: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise RecordingLoadError(f"jfr {args[0]} 执行失败 (退出码 {e.returncode}): {e.stderr.strip()}") from e
        except OSError as e:
            raise RecordingLoadError(f"无法执行 {self.jfr_tool}: {e}") from e
        return result.stdout

    def _read_summary(self) -> set[str]:
        """读取事件类型目录，同时记下头部中的开始时间和时长。"""
        types = set()
        start_ns = None
        duration_ns = None
        for line in self._run("summary").splitlines():
            m = SUMMARY_ROW_PATTERN.match(line)
            if m:
                if int(m.group("count")) > 0:
                    types.add(m.group("name"))
                continue
            m = SUMMARY_START_PATTERN.match(line)
            if m:
                start_ns = parse_timestamp(m.group("start").replace(" ", "T"))
                continue
            m = SUMMARY_DURATION_PATTERN.match(line)
            if m:
                duration_ns = int(m.group("seconds")) * 1_000_000_000

        if start_ns is not None and duration_ns is not None:
            self._time_range = (start_ns, start_ns + duration_ns)
        return types

    def event_types(self) -> set[str]:
        return set(self._event_types)

    def time_range(self) -> tuple[int, int]:
        # summary 中没有头部信息时才遍历全部事件
        if self._time_range is None:
            self._time_range = super().time_range()
        return self._time_range

    def events(self, event_types: Iterable[str] | None = None) -> Iterator[Event]:
        args = ["print", "--json"]
        if event_types is not None:
            args += ["--events", ",".join(sorted(event_types))]
        try:
            document = json.loads(self._run(*args))
        except json.JSONDecodeError as e:
            raise RecordingLoadError(f"jfr print 输出的 JSON 无效: {e}") from e
        yield from JsonRecording(document, source=self.path).events(event_types)


def _looks_like_json(path: str) -> bool:
    if path.lower().endswith(".json"):
        return True
    with open(path, "rb") as f:
        head = f.read(64).lstrip()
    return head.startswith(b"{")


def load_recording(path: str, jfr_tool: str | None = None) -> Recording:
    """
    加载录制文件。JSON 导出直接读取，二进制 .jfr 交给 jfr 工具处理。
    Raises:
        RecordingLoadError: 文件不存在或无法解析。
    """
    if not os.path.isfile(path):
        raise RecordingLoadError(f"文件不存在: {path}")
    if _looks_like_json(path):
        return JsonRecording.from_file(path)
    return JfrToolRecording(path, jfr_tool)


def decompress_file(path: str) -> str:
    """
    将 gzip 或 zstd 格式的压缩文件解压到临时文件，返回临时文件路径。
    调用方负责删除该文件。
    """
    with open(path, "rb") as f:
        magic = f.read(4)

    # jfr 工具只接受 .jfr 结尾的文件名
    fd, decompressed_path = tempfile.mkstemp(prefix="jfr_", suffix=".jfr")
    try:
        with open(path, "rb") as src, os.fdopen(fd, "wb") as dst:
            if magic.startswith(ZSTD_MAGIC):
                dctx = zstd.ZstdDecompressor()
                with dctx.stream_reader(src) as reader:  # 流式解压，避免一次性读入内存
                    shutil.copyfileobj(reader, dst)
            elif magic.startswith(GZIP_MAGIC):
                with gzip.GzipFile(fileobj=src) as reader:
                    shutil.copyfileobj(reader, dst)
            else:
                raise RecordingLoadError(f"{path} 不是 gzip 或 zstd 压缩文件")
    except Exception:
        os.remove(decompressed_path)
        raise
    logger.debug(f"已解压 {path} -> {decompressed_path}")
    return decompressed_path
