"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# output_handler.py
import json
from typing import Any, TextIO

from .common_types import ConfigError, Stack, StackEntry
from .utils import nanos_to_seconds

FRAME_SEPARATOR = ";"


class FlameGraphOutputWriter:
    """
    输出写入器的公共接口。
    - initialize: 每次转换开始前调用一次。
    - process_event: 每个被接受的事件调用一次，只在内存中累积。
    - write_output: 事件流结束后调用一次，把完整结果写入 sink。
    """

    def initialize(self, settings: Any) -> None:
        pass

    def process_event(self, start_ns: int, end_ns: int, duration_ns: int, stack: Stack, value: int) -> None:
        raise NotImplementedError

    def write_output(self, sink: TextIO) -> None:
        raise NotImplementedError


def _accumulate(counts: dict[Stack, int], stack: Stack, value: int):
    # dict 保持插入顺序，相同的栈只累加权重
    counts[stack] = counts.get(stack, 0) + value


class FoldedOutputWriter(FlameGraphOutputWriter):
    """每行一个去重后的调用栈: frame1;frame2;...;frameN <weight>"""

    def __init__(self):
        self.stack_counts: dict[Stack, int] = {}

    def process_event(self, start_ns, end_ns, duration_ns, stack, value):
        _accumulate(self.stack_counts, stack, value)

    def stack_entries(self) -> list[StackEntry]:
        return [StackEntry(stack, weight) for stack, weight in self.stack_counts.items()]

    def write_output(self, sink):
        for entry in self.stack_entries():
            sink.write(f"{FRAME_SEPARATOR.join(entry.stack)} {entry.weight}\n")


def build_flame_tree(stack_counts: dict[Stack, int]) -> dict[str, Any]:
    """
    根据去重后的调用栈构建 d3-flame-graph 使用的树结构。
    Returns:
        dict: {"name": "root", "value": N, "children": [...]}，子节点按首次出现的顺序排列。
    """
    root = {"name": "root", "value": 0, "children": [], "_name_map": {}}

    for stack, weight in stack_counts.items():
        current_node = root
        current_node["value"] += weight
        for name in stack:  # 根帧在前
            if name not in current_node["_name_map"]:
                next_node = {
                    "name": name,
                    "value": 0,
                    "children": [],
                    "_name_map": {},  # 临时映射，用于快速查找子节点
                }
                current_node["children"].append(next_node)
                current_node["_name_map"][name] = next_node
            current_node = current_node["_name_map"][name]
            current_node["value"] += weight

    def cleanup(node):
        node.pop("_name_map", None)
        for child in node["children"]:
            cleanup(child)

    cleanup(root)
    return root


class JsonOutputWriter(FlameGraphOutputWriter):
    """d3-flame-graph 兼容的 JSON 输出，--live 时按事件开始的秒数分组。"""

    def __init__(self):
        self.pretty_print = True
        self.live = False
        # 非 live 模式下只有一个分组 (键为 None)
        self.stack_counts: dict[int | None, dict[Stack, int]] = {}

    def initialize(self, settings):
        self.pretty_print = not getattr(settings, "compact_json", False)
        self.live = getattr(settings, "live", False)

    def process_event(self, start_ns, end_ns, duration_ns, stack, value):
        key = nanos_to_seconds(start_ns) if self.live else None
        _accumulate(self.stack_counts.setdefault(key, {}), stack, value)

    def build_output(self) -> dict[str, Any]:
        if not self.live:
            return build_flame_tree(self.stack_counts.get(None, {}))
        return {str(second): build_flame_tree(counts) for second, counts in self.stack_counts.items()}

    def write_output(self, sink):
        indent = 2 if self.pretty_print else None
        separators = None if self.pretty_print else (',', ':')
        json.dump(self.build_output(), sink, indent=indent, separators=separators)
        sink.write("\n")


OUTPUT_TYPES = {
    "folded": FoldedOutputWriter,
    "json": JsonOutputWriter,
}


def create_writer(output_type: str) -> FlameGraphOutputWriter:
    """
    Raises:
        ConfigError: 不支持的输出类型。
    """
    try:
        return OUTPUT_TYPES[output_type]()
    except KeyError:
        raise ConfigError(f"不支持的输出类型 {output_type!r} (可选: {', '.join(OUTPUT_TYPES)})") from None
