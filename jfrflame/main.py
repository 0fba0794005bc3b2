"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# main.py
import os
import sys
import logging
from dataclasses import dataclass
from datetime import datetime

from . import config
from . import event_selector as Selector
from . import output_handler as Output
from . import recording_loader as Loader
from . import stack_normalizer as Normalizer
from . import utils
from .common_types import ConfigError, NoMatchingEventsError, RecordingLoadError, RenderOptions, TimeWindow

logger = logging.getLogger(__name__)

PRINT_FORMAT = "{:<16}: {}"
DATETIME_FORMAT = "%B %d, %Y %I:%M:%S %p %Z"


@dataclass
class PipelineState:
    """一次转换过程中的全部状态，初始化后除计数器外不再修改。"""
    event_types: frozenset[str]
    window: TimeWindow | None
    render_options: RenderOptions
    omit_packages: tuple[str, ...] = ()
    processed_events: int = 0  # 类型匹配的事件数
    accepted_events: int = 0  # 通过时间过滤并写入输出的事件数


def build_state(settings: config.Config) -> PipelineState:
    """
    根据配置构建流水线状态。
    Raises:
        ConfigError: 分析类型无效。
    """
    event_types = Selector.select_event_types(settings.profile_type)
    return PipelineState(
        event_types=event_types,
        window=Selector.build_time_window(settings.start_timestamp, settings.end_timestamp),
        render_options=Normalizer.resolve_render_options(
            show_return_value=settings.show_return_value,
            use_simple_names=settings.use_simple_names,
            hide_arguments=settings.hide_arguments,
            ignore_line_numbers=settings.ignore_line_numbers,
        ),
        omit_packages=tuple(settings.omit_first_seen_package),
    )


class FlameGraphConverter:
    def __init__(self, settings: config.Config):
        self.settings = settings
        self.state = build_state(settings)
        if settings.profile_type == Selector.PROFILE_TYPE_CPU:
            logger.info(f"CPU profiling: {sorted(self.state.event_types)}")
        else:
            logger.info(f"Off-CPU profiling: {sorted(self.state.event_types)}")

        self.writer = Output.create_writer(settings.output_type)
        self.writer.initialize(settings)

    def _report_load_failure(self):
        logger.error("无法加载 JFR 文件。")
        if not self.settings.decompress:
            logger.error("如果 JFR 文件是压缩过的，请尝试使用解压选项 (-d)")

    def run(self):
        """执行完整的转换流程"""
        temp_path = None
        try:
            recording_path = self.settings.jfrdump
            try:
                if self.settings.decompress:
                    logger.info("解压输入文件...")
                    temp_path = Loader.decompress_file(recording_path)
                    recording_path = temp_path
                recording = Loader.load_recording(recording_path)
            except Exception:
                self._report_load_failure()
                raise

            # 事件在遍历时才解析，解析失败同样属于加载错误
            try:
                if self.settings.print_jfr_details:
                    self.print_details(recording)
                    return
                self.process(recording)
            except RecordingLoadError:
                self._report_load_failure()
                raise

            self.write_output()
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.remove(temp_path)

    def process(self, recording: Loader.Recording):
        """遍历事件：选择 -> 规范化调用栈 -> 写入器累积"""
        state = self.state
        if not Selector.has_matching_types(recording.event_types(), state.event_types):
            raise NoMatchingEventsError(state.event_types)

        for event in recording.events(state.event_types):
            if event.event_type not in state.event_types:
                continue
            state.processed_events += 1
            if state.processed_events % self.settings.log_interval == 0:
                logger.info(f"已处理 {state.processed_events} 个事件")

            if not Selector.accept(event, state.event_types, state.window):
                continue

            stack = Normalizer.normalize(event, state.render_options, state.omit_packages)
            self.writer.process_event(
                event.start_ns, event.end_ns, event.duration_ns, stack, Selector.event_weight(event)
            )
            state.accepted_events += 1

        logger.info(f"事件处理完成: 匹配 {state.processed_events} 个, 写入 {state.accepted_events} 个")
        if state.accepted_events == 0:
            raise NoMatchingEventsError(state.event_types)

    def write_output(self):
        if self.settings.output:
            with open(self.settings.output, "w", encoding="utf-8") as f:
                self.writer.write_output(f)
            logger.info(f"输出已写入: {self.settings.output}")
        else:
            self.writer.write_output(sys.stdout)
            sys.stdout.flush()

    def _format_time(self, nanos: int | None) -> str:
        if nanos is None:
            return "N/A"
        seconds = utils.nanos_to_seconds(nanos)
        if self.settings.print_timestamp:
            return str(seconds)
        return datetime.fromtimestamp(seconds).astimezone().strftime(DATETIME_FORMAT)

    def print_details(self, recording: Loader.Recording):
        """打印录制文件的时间范围以及匹配事件的最早开始/最晚结束时间。"""
        start, end = recording.time_range()
        matched = Loader.time_bounds(
            event for event in recording.events(self.state.event_types)
            if event.event_type in self.state.event_types
        )
        min_start, max_end = matched if matched else (None, None)

        print("JFR Details")
        print(PRINT_FORMAT.format("Start", self._format_time(start)))
        print(PRINT_FORMAT.format("End", self._format_time(end)))
        print(PRINT_FORMAT.format("Min Start Event", self._format_time(min_start)))
        print(PRINT_FORMAT.format("Max End Event", self._format_time(max_end)))
        print(PRINT_FORMAT.format("JFR Duration", utils.format_duration(end - start)))
        events_duration = utils.format_duration(max_end - min_start) if matched else "N/A"
        print(PRINT_FORMAT.format("Events Duration", events_duration))


def main(argv: list[str] | None = None) -> int:
    settings = config.initialize_config(argv)
    utils.setup_logging(settings.verbose)

    try:
        converter = FlameGraphConverter(settings)
        converter.run()
    except (ConfigError, NoMatchingEventsError) as e:
        logger.error(str(e))
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
