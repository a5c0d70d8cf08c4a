# backend/scripts/init_db.py
# 功能: 初始化数据库（创建限流表），可选清理过期的限流窗口
# 主要函数: init_database(), purge_rate_limit_windows(), main()

"""
数据库初始化脚本
运行: python -m scripts.init_db [--purge]
"""

import argparse
import sys
import time
from pathlib import Path

# 确保可以导入core模块
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import settings
from core.database import get_engine, init_db
from core.rate_limiter import SqlRateLimitStore


def init_database():
    """创建所有数据库表"""
    print("正在创建数据库表...")
    init_db(get_engine())
    print("数据库表创建完成！")


def purge_rate_limit_windows(keep_windows: int = 1) -> int:
    """删除当前窗口之前 keep_windows 个窗口以外的计数行"""
    window = settings.rate_limit_window_seconds
    current_start = int(time.time() // window) * window
    cutoff = current_start - (keep_windows - 1) * window
    removed = SqlRateLimitStore(get_engine()).purge_before(cutoff)
    print(f"  - 清理了 {removed} 条过期限流窗口")
    return removed


def main(argv=None):
    """主函数"""
    parser = argparse.ArgumentParser(description="初始化规划访谈后端数据库")
    parser.add_argument("--purge", action="store_true", help="清理过期的限流窗口")
    args = parser.parse_args(argv)

    print("=" * 50)
    print("规划访谈后端 - 数据库初始化")
    print("=" * 50)

    init_database()
    if args.purge:
        purge_rate_limit_windows()

    print("=" * 50)
    print("初始化完成！")
    print("=" * 50)


if __name__ == "__main__":
    main()
