"""
又拍云 API 示例：用 UPYUN_* 环境变量连接，打印用量并列出目录。

用法:
  python -m tests.main              # 列出根目录
  python -m tests.main /images -a   # 跟随分页列出 /images 全部条目
"""

import argparse
import sys
from pathlib import Path

# 从 tests/ 直接运行 python main.py 时，把项目根加入 path
_root = Path(__file__).resolve().parent.parent
if _root not in [Path(p).resolve() for p in sys.path]:
    sys.path.insert(0, str(_root))

from upyunapi import UpyunClient, entry_is_folder, entry_modified, entry_size


def main() -> None:
    parser = argparse.ArgumentParser(description="又拍云目录列表示例")
    parser.add_argument("path", nargs="?", default="/", help="目录路径")
    parser.add_argument("-a", "--all", action="store_true", help="跟随分页列出全部")
    args = parser.parse_args()

    with UpyunClient.from_env() as client:
        print(f"服务 {client.bucket} 已用 {client.usage()} B")
        if args.all:
            entries = list(client.iter_dir(args.path))
        else:
            entries = client.list_dir(args.path)["files"]
        print(f"目录 {args.path} 共 {len(entries)} 项")
        for e in entries:
            kind = "目录" if entry_is_folder(e) else "文件"
            print(f"  [{kind}] {e['name']}  大小: {entry_size(e)} B  修改: {entry_modified(e)}")


if __name__ == "__main__":
    main()
