"""数据库基础配置"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool
from config import config

Base = declarative_base()

# 数据库引擎缓存
_engines = {}
_session_factories = {}

def _setup_engine(db_path: str):
    """创建并配置数据库引擎"""
    eng = create_engine(
        f'sqlite:///{db_path}',
        connect_args={'check_same_thread': False},
        poolclass=QueuePool,
        pool_size=config.POOL_SIZE,
        max_overflow=config.MAX_OVERFLOW,
        pool_timeout=config.POOL_TIMEOUT
    )
    @event.listens_for(eng, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        # 由 SQLAlchemy 自行发出 BEGIN，保证 SAVEPOINT 可用
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        # 租约删除时级联删除租客资料、付款与账单
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")
    return eng

def get_engine(db_path: str = None):
    """获取数据库引擎"""
    db_path = db_path or config.DB_PATH
    if db_path not in _engines:
        _engines[db_path] = _setup_engine(db_path)
    return _engines[db_path]

def get_session_factory(db_path: str = None):
    """获取数据库会话工厂"""
    db_path = db_path or config.DB_PATH
    if db_path not in _session_factories:
        eng = get_engine(db_path)
        _session_factories[db_path] = sessionmaker(autocommit=False, autoflush=False, bind=eng)
    return _session_factories[db_path]

def init_db(db_path: str = None):
    """初始化数据库表结构"""
    Base.metadata.create_all(get_engine(db_path))

# 默认引擎和会话
engine = get_engine()
SessionLocal = get_session_factory()
