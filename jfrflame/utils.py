"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# utils.py
import logging

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MINUTE = 60 * NANOS_PER_SECOND
NANOS_PER_HOUR = 60 * NANOS_PER_MINUTE

DURATION_FORMAT = "{0} h {1} min"

def setup_logging(verbose: bool = False):
    """配置全局日志记录器"""
    # 创建根日志记录器
    root_logger = logging.getLogger()
    level = logging.DEBUG if verbose else logging.INFO
    # 避免重复添加处理器
    if root_logger.hasHandlers():
        root_logger.setLevel(level)
        return

    root_logger.setLevel(level)

    # 创建控制台处理器 (输出到 stderr，stdout 留给转换结果)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    # 定义日志格式
    formatter = logging.Formatter(
        '[%(asctime)s]-%(levelname)s- %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)

def nanos_to_seconds(nanos: int) -> int:
    return nanos // NANOS_PER_SECOND

def seconds_to_nanos(seconds: int) -> int:
    return seconds * NANOS_PER_SECOND

def format_duration(nanos: int) -> str:
    """将纳秒时长格式化为 'X h Y min'。"""
    hours = nanos // NANOS_PER_HOUR
    minutes = (nanos - hours * NANOS_PER_HOUR) // NANOS_PER_MINUTE
    return DURATION_FORMAT.format(hours, minutes)
