"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# event_selector.py
from typing import Iterable

from .common_types import ConfigError, Event, TimeWindow
from .utils import seconds_to_nanos

PROFILE_TYPE_CPU = 1
PROFILE_TYPE_OFF_CPU = 2

# "Method Profiling Sample"
ON_CPU_EVENT_TYPES = frozenset({"jdk.ExecutionSample"})

OFF_CPU_EVENT_TYPES = frozenset({
    "jdk.ThreadPark",  # Java Thread Park
    "jdk.SocketRead",
    "jdk.SocketWrite",
    "jdk.FileWrite",
    "jdk.FileRead",
    "jdk.JavaMonitorWait",
    "jdk.JavaMonitorEnter",  # Java Monitor Blocked
    "jdk.ThreadSleep",
})

PROFILE_EVENT_TYPES = {
    PROFILE_TYPE_CPU: ON_CPU_EVENT_TYPES,
    PROFILE_TYPE_OFF_CPU: OFF_CPU_EVENT_TYPES,
}


def select_event_types(profile_type: int) -> frozenset[str]:
    """
    根据分析类型返回需要统计的事件类型集合。
    Raises:
        ConfigError: 分析类型不是 1 或 2。
    """
    try:
        return PROFILE_EVENT_TYPES[profile_type]
    except KeyError:
        raise ConfigError(f"无效的分析类型 {profile_type} (应为 1 或 2)") from None


def build_time_window(start_seconds: int = 0, end_seconds: int = 0) -> TimeWindow | None:
    """根据秒级的开始/结束时间构建过滤窗口，两者都未设置时不过滤。"""
    if start_seconds <= 0 and end_seconds <= 0:
        return None
    end_ns = seconds_to_nanos(end_seconds) if end_seconds > 0 else None
    return TimeWindow(seconds_to_nanos(max(start_seconds, 0)), end_ns)


def accept(event: Event, event_types: frozenset[str], window: TimeWindow | None = None) -> bool:
    """事件类型匹配，并且开始或结束时间落在窗口内 (有重叠即可)。"""
    if event.event_type not in event_types:
        return False
    if window is None:
        return True
    return window.contains(event.start_ns) or window.contains(event.end_ns)


def has_matching_types(catalog: Iterable[str], event_types: frozenset[str]) -> bool:
    return any(name in event_types for name in catalog)


def event_weight(event: Event) -> int:
    """每个事件计数为 1。"""
    return 1
