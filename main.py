#!/usr/bin/env python3
"""
Telegram 21点机器人入口文件
"""
import asyncio
from blackjack_bot.main import main

if __name__ == "__main__":
    asyncio.run(main())
