#!/usr/bin/env python3
"""自动备份脚本 - 可通过cron定时执行"""
import os
import sys
import shutil
import datetime
import glob
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config, get_logger

logger = get_logger(__name__)

BACKUP_PATTERN = "motel_*.db"


def backup(db_path: str = None, backup_dir: str = None, max_backups: int = None) -> str:
    """执行数据库备份，保留最近 max_backups 个"""
    db_path = db_path or config.DB_PATH
    backup_dir = backup_dir or config.BACKUP_DIR
    max_backups = max_backups or config.MAX_BACKUPS
    os.makedirs(backup_dir, exist_ok=True)

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = os.path.join(backup_dir, f"motel_{timestamp}.db")

    # 复制数据库文件
    shutil.copy2(db_path, backup_path)
    logger.info(f"备份成功: {backup_path}")

    # 清理旧备份
    backups = sorted(glob.glob(os.path.join(backup_dir, BACKUP_PATTERN)))
    if len(backups) > max_backups:
        for old in backups[:-max_backups]:
            os.remove(old)
            logger.info(f"删除旧备份: {old}")

    return backup_path


if __name__ == "__main__":
    backup()
