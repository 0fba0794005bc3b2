"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# config.py
from tap import Tap

class Config(Tap):
    """将 JFR 录制文件转换为火焰图可用的格式"""

    # --- Input & Output ---
    jfrdump: str  # Java Flight Recorder 录制文件
    output_type: str = "folded"  # 输出类型: folded 或 json
    output: str | None = None  # 输出文件，默认为标准输出
    decompress: bool = False  # 先解压录制文件 (gzip 或 zstd)

    # --- Profile Selection ---
    profile_type: int  # 1. CPU profile 2. Off-CPU profile
    start_timestamp: int = 0  # 过滤用的开始时间戳 (秒)
    end_timestamp: int = 0  # 过滤用的结束时间戳 (秒)
    omit_first_seen_package: list[str] = []  # 如果这些包出现在栈底，则省略 (逗号分隔)

    # --- Frame Rendering ---
    ignore_line_numbers: bool = False  # 栈帧中不显示行号
    show_return_value: bool = False  # 显示方法的返回类型
    use_simple_names: bool = False  # 使用简单名称代替全限定名称
    hide_arguments: bool = False  # 隐藏方法参数

    # --- JFR Details ---
    print_jfr_details: bool = False  # 打印 JFR 详情后退出
    print_timestamp: bool = False  # 在 JFR 详情中打印时间戳而不是日期时间

    # --- JSON Output ---
    live: bool = False  # 按事件开始时间 (秒) 分组导出调用栈
    compact_json: bool = False  # 是否生成紧凑的JSON格式

    # --- Advanced Settings ---
    log_interval: int = 100000  # 日志间隔
    verbose: bool = False  # 输出调试日志

    def configure(self) -> None:
        self.add_argument("-f", "--jfrdump")
        self.add_argument("-ot", "--output-type")
        self.add_argument("-o", "--output")
        self.add_argument("-d", "--decompress")
        self.add_argument("-e", "--profile-type")
        self.add_argument("-st", "--start-timestamp")
        self.add_argument("-et", "--end-timestamp")
        self.add_argument("-op", "--omit-first-seen-package")
        self.add_argument("-i", "--ignore-line-numbers")
        self.add_argument("-rv", "--show-return-value")
        self.add_argument("-sn", "--use-simple-names")
        self.add_argument("-ha", "--hide-arguments")
        self.add_argument("-j", "--print-jfr-details")
        self.add_argument("-t", "--print-timestamp")
        self.add_argument("-l", "--live")

    def process_args(self) -> None:
        # 支持 "-op a.,b." 和 "-op a. b." 两种写法
        self.omit_first_seen_package = [
            prefix.strip()
            for item in self.omit_first_seen_package
            for prefix in item.split(",")
            if prefix.strip()
        ]


# 全局配置实例
settings: Config = None


def initialize_config(argv: list[str] | None = None) -> Config:
    """解析命令行参数，初始化并返回全局的 `settings` 对象"""
    global settings
    settings = Config(underscores_to_dashes=True).parse_args(argv)
    return settings
