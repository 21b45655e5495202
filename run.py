#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
应用启动脚本

使用方法:
    python run.py              # 默认启动（带自动重载）
    python run.py --no-reload  # 不启用自动重载
    python run.py --port 8080  # 指定端口
"""

import argparse
import os
import sys

import uvicorn


def main():
    """解析命令行参数并启动应用"""
    parser = argparse.ArgumentParser(description="启动 Feest 食物分享 API")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"), help="服务器主机地址")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")), help="服务器端口 (默认: 3000)")
    parser.add_argument("--no-reload", action="store_true", help="禁用自动重载功能")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="日志级别 (默认: info)",
    )
    args = parser.parse_args()

    if not os.path.exists(".env"):
        print("警告: 未找到 .env 文件，请确保已配置环境变量")

    print(f"启动 Feest API: http://{args.host}:{args.port}")
    print(f"API 文档: http://{args.host}:{args.port}/docs")

    try:
        uvicorn.run(
            "foodshare.main:app",
            host=args.host,
            port=args.port,
            reload=not args.no_reload,
            log_level=args.log_level,
            access_log=False,
        )
    except KeyboardInterrupt:
        print("\n服务已停止")
    except Exception as e:
        print(f"启动失败: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
