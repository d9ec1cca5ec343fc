"""配置管理模块"""
import os
import logging
from dataclasses import dataclass

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.getenv('MOTEL_LOG_PATH', 'motel.log'), encoding='utf-8'),
        logging.StreamHandler()
    ]
)

def get_logger(name: str) -> logging.Logger:
    """获取模块日志器"""
    return logging.getLogger(name)

@dataclass
class Config:
    # 应用配置
    APP_NAME: str = os.getenv('MOTEL_APP_NAME', '旅馆租赁管理系统')
    DEFAULT_ADMIN_NAME: str = os.getenv('MOTEL_ADMIN_NAME', 'Administrator')
    DEFAULT_ADMIN_EMAIL: str = os.getenv('MOTEL_ADMIN_EMAIL', 'admin@motel.local')
    DEFAULT_ADMIN_PASS: str = os.getenv('MOTEL_ADMIN_PASS', 'admin123')

    # 数据库配置
    DB_PATH: str = os.getenv('MOTEL_DB_PATH', 'motel.db')
    BACKUP_DIR: str = os.getenv('MOTEL_BACKUP_DIR', 'backups')
    MAX_BACKUPS: int = int(os.getenv('MOTEL_MAX_BACKUPS', '30'))

    # 安全配置
    LOGIN_MAX_FAIL: int = int(os.getenv('MOTEL_LOGIN_MAX_FAIL', '5'))
    LOCK_MINUTES: int = int(os.getenv('MOTEL_LOCK_MINUTES', '15'))
    SESSION_HOURS: int = int(os.getenv('MOTEL_SESSION_HOURS', '8'))

    # 审计配置
    WORM_LOG_PATH: str = os.getenv('MOTEL_WORM_LOG', 'worm_audit.log')

    # 连接池配置
    POOL_SIZE: int = int(os.getenv('MOTEL_POOL_SIZE', '5'))
    MAX_OVERFLOW: int = int(os.getenv('MOTEL_MAX_OVERFLOW', '10'))
    POOL_TIMEOUT: int = int(os.getenv('MOTEL_POOL_TIMEOUT', '30'))

    # 账单配置
    INVOICE_DUE_DAYS: int = int(os.getenv('MOTEL_INVOICE_DUE_DAYS', '7'))
    INVOICE_NUMBER_RETRIES: int = int(os.getenv('MOTEL_INVOICE_NUMBER_RETRIES', '3'))
    DAYS_PER_MONTH: int = int(os.getenv('MOTEL_DAYS_PER_MONTH', '30'))

    # 未配置费率时的默认值（0 为合法费率）
    DEFAULT_ELECTRICITY_RATE: str = os.getenv('MOTEL_DEFAULT_ELECTRICITY_RATE', '0.00')
    DEFAULT_WATER_RATE: str = os.getenv('MOTEL_DEFAULT_WATER_RATE', '0.00')

config = Config()
