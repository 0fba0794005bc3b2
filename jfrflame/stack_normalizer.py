"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# stack_normalizer.py
from typing import Iterable

from .common_types import Event, Frame, RenderOptions, Stack

# 没有调用栈的事件使用的哨兵帧
IGNORED_FRAME = "Ignored"


def resolve_render_options(
    show_return_value: bool = False,
    use_simple_names: bool = False,
    hide_arguments: bool = False,
    ignore_line_numbers: bool = False,
) -> RenderOptions:
    """
    一次性解析帧标签渲染选项。
    使用简单名称时强制关闭全限定类型、参数和返回类型。
    """
    if use_simple_names:
        return RenderOptions(
            show_return_value=False,
            qualify_types=False,
            show_arguments=False,
            show_line_numbers=not ignore_line_numbers,
        )
    return RenderOptions(
        show_return_value=show_return_value,
        qualify_types=True,
        show_arguments=not hide_arguments,
        show_line_numbers=not ignore_line_numbers,
    )


def frame_label(frame: Frame, options: RenderOptions) -> str:
    label = frame.method.human_readable(
        show_return=options.show_return_value,
        qualify_types=options.qualify_types,
        show_args=options.show_arguments,
    )
    if options.show_line_numbers and frame.line_number is not None:
        label += f":{frame.line_number}"
    return label


def is_omitted(label: str, omit_packages: Iterable[str]) -> bool:
    return any(label.startswith(prefix) for prefix in omit_packages)


def normalize(event: Event, options: RenderOptions, omit_packages: Iterable[str] = ()) -> Stack:
    """
    将事件的原始调用栈转换为根帧在前的标签序列。
    - 没有调用栈时返回哨兵栈 ("Ignored",)。
    - 从根开始扫描，在保留第一个帧之前，跳过以 omit_packages 中任一前缀开头的帧；
      一旦保留了某个帧，后续帧不再省略。
    - 如果所有帧都被省略，同样返回哨兵栈，以免丢失该事件的权重。
    """
    if event.stack_trace is None:
        return (IGNORED_FRAME,)

    omit_packages = tuple(omit_packages)
    names = []
    for frame in reversed(event.stack_trace):  # 录制文件中叶子帧在前
        name = frame_label(frame, options)
        if not names and is_omitted(name, omit_packages):
            continue
        names.append(name)

    if not names:
        return (IGNORED_FRAME,)
    return tuple(names)
