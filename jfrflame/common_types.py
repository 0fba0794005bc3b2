"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# common_types.py
from typing import NamedTuple

# JVM 描述符中的基本类型
PRIMITIVE_TYPES = {
    "B": "byte",
    "C": "char",
    "D": "double",
    "F": "float",
    "I": "int",
    "J": "long",
    "S": "short",
    "Z": "boolean",
    "V": "void",
}


class ConverterError(Exception):
    """转换过程中所有可预期错误的基类。"""


class ConfigError(ConverterError):
    """命令行参数或配置无效。"""


class RecordingLoadError(ConverterError):
    """录制文件无法加载或解析。"""


class NoMatchingEventsError(ConverterError):
    """录制文件中没有与所选事件类型匹配的事件。"""

    def __init__(self, event_types):
        self.event_types = frozenset(event_types)
        super().__init__(f"没有以下类型的事件: [{', '.join(sorted(self.event_types))}]")


def _parse_field_types(descriptor: str) -> list[str]:
    """将一串字段描述符 (如 'ILjava/lang/String;[J') 解析为可读的类型名列表。"""
    types = []
    idx = 0
    while idx < len(descriptor):
        dims = 0
        while idx < len(descriptor) and descriptor[idx] == "[":
            dims += 1
            idx += 1
        if idx >= len(descriptor):
            raise ValueError(f"描述符在数组标记后意外结束: {descriptor!r}")

        code = descriptor[idx]
        if code == "L":
            end = descriptor.find(";", idx)
            if end < 0:
                raise ValueError(f"类名缺少结束符 ';': {descriptor!r}")
            name = descriptor[idx + 1:end].replace("/", ".")
            idx = end + 1
        elif code in PRIMITIVE_TYPES:
            name = PRIMITIVE_TYPES[code]
            idx += 1
        else:
            raise ValueError(f"无法识别的类型代码 {code!r}: {descriptor!r}")
        types.append(name + "[]" * dims)
    return types


def parse_method_descriptor(descriptor: str) -> tuple[tuple[str, ...], str]:
    """
    解析 JVM 方法描述符。
    Args:
        descriptor (str): 例如 "(ILjava/lang/String;)V"。
    Returns:
        tuple: (参数类型元组, 返回类型)。
    Raises:
        ValueError: 描述符格式不正确。
    """
    if not descriptor.startswith("(") or ")" not in descriptor:
        raise ValueError(f"无效的方法描述符: {descriptor!r}")
    close = descriptor.index(")")
    args = _parse_field_types(descriptor[1:close])
    returns = _parse_field_types(descriptor[close + 1:])
    if len(returns) != 1:
        raise ValueError(f"方法描述符必须且只能有一个返回类型: {descriptor!r}")
    return tuple(args), returns[0]


def simple_name(type_name: str) -> str:
    """去掉包名，'java.util.Map$Entry[]' -> 'Map$Entry[]'。"""
    return type_name.rsplit(".", 1)[-1]


class MethodDescriptor(NamedTuple):
    """栈帧所属的方法。"""
    type_name: str  # 声明类的全限定名, 如 java.lang.Thread
    method_name: str
    argument_types: tuple[str, ...] = ()
    return_type: str = "void"

    @classmethod
    def from_jvm(cls, type_name: str, method_name: str, descriptor: str | None) -> 'MethodDescriptor':
        """根据录制文件中的类名 (可能使用 '/' 分隔) 和方法描述符创建对象。"""
        args, ret = parse_method_descriptor(descriptor) if descriptor else ((), "void")
        return cls(type_name.replace("/", "."), method_name, args, ret)

    def human_readable(self, show_return: bool = False, qualify_types: bool = True, show_args: bool = True) -> str:
        """
        生成方法的可读名称: [<返回类型> ]<类名>.<方法名>[(<参数>, ...)]
        Args:
            show_return (bool): 是否在前面显示返回类型。
            qualify_types (bool): 类型是否带包名。
            show_args (bool): 是否显示参数列表，不显示时省略括号。
        """
        fmt = (lambda name: name) if qualify_types else simple_name
        label = f"{fmt(self.type_name)}.{self.method_name}"
        if show_args:
            label += "(" + ", ".join(fmt(arg) for arg in self.argument_types) + ")"
        if show_return:
            label = f"{fmt(self.return_type)} {label}"
        return label


class Frame(NamedTuple):
    """表示一个调用栈帧的结构体。"""
    method: MethodDescriptor
    line_number: int | None = None


RawStack = tuple[Frame, ...]
"""录制文件中的原始调用栈，叶子帧在前。"""

Stack = tuple[str, ...]
"""规范化后的调用栈，根帧在前，每个元素是帧的标签。"""


class Event(NamedTuple):
    """
    录制文件中的单个事件。
    """
    event_type: str  # 事件类型, 如 'jdk.ExecutionSample'
    start_ns: int  # 开始时间戳 (纳秒)
    end_ns: int  # 结束时间戳 (纳秒)
    duration_ns: int = 0
    stack_trace: RawStack | None = None  # 没有调用栈时为 None


class StackEntry(NamedTuple):
    """一个去重后的调用栈及其累计权重。"""
    stack: Stack
    weight: int


class RenderOptions(NamedTuple):
    """在初始化时一次性解析好的帧标签渲染选项。"""
    show_return_value: bool = False
    qualify_types: bool = True
    show_arguments: bool = True
    show_line_numbers: bool = True


class TimeWindow(NamedTuple):
    """时间过滤窗口 (纳秒，闭区间)，end_ns 为 None 表示不设上限。"""
    start_ns: int = 0
    end_ns: int | None = None

    def contains(self, timestamp_ns: int) -> bool:
        if timestamp_ns < self.start_ns:
            return False
        return self.end_ns is None or timestamp_ns <= self.end_ns
