"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# 支持 python -m jfrflame 调用
import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
