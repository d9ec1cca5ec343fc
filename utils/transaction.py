"""事务管理模块"""
from contextlib import contextmanager
from sqlalchemy.exc import IntegrityError
from config import get_logger
from models import SessionLocal
from services.audit import append_worm_log
from utils.exceptions import ConflictError

logger = get_logger(__name__)


@contextmanager
def transaction_scope(session_factory=None):
    """一次请求一个工作单元：提交成功后才写入 WORM 审计日志

    提交时的唯一约束冲突转换为 ConflictError，其余异常回滚后原样抛出。
    """
    s = (session_factory or SessionLocal)()
    audit_buffer = []
    try:
        yield s, audit_buffer
        s.commit()
    except IntegrityError as e:
        s.rollback()
        logger.warning(f"事务提交冲突，已回滚: {e.orig}")
        raise ConflictError("数据冲突，请重试", retryable=True) from e
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()

    for payload in audit_buffer:
        try:
            append_worm_log(payload)
        except IOError as e:
            logger.error(f"WORM日志写入失败: {e}")
