"""审计服务模块"""
import json
import hashlib
import datetime
import uuid
from typing import Optional
from config import config, get_logger
from models import SessionLocal, AuditLog

logger = get_logger(__name__)


def append_worm_log(entry: dict) -> str:
    """写入WORM审计日志"""
    payload = json.dumps(entry, ensure_ascii=False, default=str)
    digest = hashlib.sha256(payload.encode()).hexdigest()
    try:
        with open(config.WORM_LOG_PATH, 'a', encoding='utf-8') as f:
            f.write(payload + "\n")
    except IOError as e:
        logger.error(f"WORM日志写入失败: {e}")
        raise
    return digest


def _build_entry(actor: str, action: str, target, details, trace_id: Optional[str]) -> dict:
    return {
        "user": actor, "action": action, "target": str(target),
        "details": details if isinstance(details, str) else json.dumps(details, ensure_ascii=False, default=str),
        "trace": trace_id or str(uuid.uuid4()),
        "ts": datetime.datetime.now().isoformat()
    }


class AuditService:
    @staticmethod
    def log(actor: str, action: str, target, details="", trace_id: Optional[str] = None):
        """独立会话记录审计日志（登录、登出等非事务操作）"""
        s = SessionLocal()
        try:
            entry = _build_entry(actor, action, target, details, trace_id)
            worm_hash = append_worm_log(entry)
            s.add(AuditLog(
                user=actor, action=action, target=entry["target"],
                details=entry["details"], trace_id=entry["trace"], worm_hash=worm_hash
            ))
            s.commit()
            logger.debug(f"审计日志: {action} -> {target}")
        except Exception as e:
            s.rollback()
            logger.error(f"审计日志写入失败: {e}")
        finally:
            s.close()

    @staticmethod
    def log_deferred(s, audit_buffer: Optional[list], actor: str, action: str,
                     target, details="", trace_id: Optional[str] = None):
        """在业务事务内记录审计日志，WORM 文件在提交后由 transaction_scope 写入"""
        entry = _build_entry(actor, action, target, details, trace_id)
        worm_hash = hashlib.sha256(json.dumps(entry, ensure_ascii=False).encode()).hexdigest()
        s.add(AuditLog(
            user=actor, action=action, target=entry["target"],
            details=entry["details"], trace_id=entry["trace"], worm_hash=worm_hash
        ))
        if audit_buffer is not None:
            audit_buffer.append(entry)
