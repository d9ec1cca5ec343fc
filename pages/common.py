"""页面公共工具"""
import time
import streamlit as st
from sqlalchemy.exc import SQLAlchemyError
from config import get_logger
from models import User
from utils.exceptions import MotelException, ValidationError
from utils.transaction import transaction_scope

logger = get_logger(__name__)


def run_action(label: str, fn, *args, rerun: bool = True, **kwargs):
    """在事务内以当前登录用户身份调用服务函数，成功后刷新页面

    失败时显示错误信息并返回 None；字段级校验错误逐条列出。
    """
    try:
        with transaction_scope() as (s_trx, audit_buffer):
            actor = s_trx.get(User, st.session_state.get('user_id'))
            result = fn(s_trx, *args, actor=actor, audit_buffer=audit_buffer, **kwargs)
    except ValidationError as e:
        st.error(f"{label}失败: {e}")
        for field, messages in e.errors.items():
            st.caption(f"• {field}: {'; '.join(str(m) for m in messages)}")
        return None
    except (MotelException, SQLAlchemyError) as e:
        logger.error(f"{label}失败: {e}")
        st.error(f"{label}失败: {e}")
        return None
    st.success(f"{label}成功")
    if rerun:
        time.sleep(0.5)
        st.rerun()
    return result


def load_actor(s):
    return s.get(User, st.session_state.get('user_id'))
