import os
from pathlib import Path

import aiosqlite

from calendar_bot.logger import logger

__all__ = ["open_db", "SCHEMA_VERSION"]

_SQL_DIR = Path(__file__).with_name("sql")

SCHEMA_VERSION = 1


async def open_db(db_path: str) -> aiosqlite.Connection:
    """打开数据库并执行未完成的迁移。调用方负责 close()。"""
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)
    conn = await aiosqlite.connect(db_path)

    async with conn.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        user_version = row[0]

    if user_version < 1:
        init_sql = (_SQL_DIR / "db_init_v1.sql").read_text(encoding="utf-8")
        await conn.executescript(init_sql)
        await conn.execute("PRAGMA user_version = 1")
        logger.info(f"数据库已初始化: {db_path}, schema v1")

    # 数据库升级逻辑可以在这里继续添加
    await conn.commit()
    return conn
