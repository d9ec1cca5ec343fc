"""旅馆租赁管理系统 - 主入口"""
import streamlit as st
import streamlit.components.v1 as components

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import config, get_logger
from models import SessionLocal, engine, Base, User
from services.auth import AuthService
from services.audit import AuditService
from services.gate import AuthorizationGate
from services.rbac import RbacService, ADMIN_ROLE
from utils.exceptions import MotelException
from pages import (
    page_rooms, page_bookings, page_book_room, page_my_bookings,
    page_electricity, page_utility_settings, page_invoices, page_my_invoices, page_roles,
)

logger = get_logger(__name__)

# 页面配置
st.set_page_config(page_title=config.APP_NAME, layout="wide", page_icon="🏨")

# 初始化数据库表
Base.metadata.create_all(engine)


def _seed_defaults():
    """初始化默认角色权限与管理员账号"""
    s = SessionLocal()
    try:
        RbacService.seed_defaults(s)
        admin = s.query(User).filter_by(email=config.DEFAULT_ADMIN_EMAIL).first()
        if not admin:
            admin = AuthService.register(s, config.DEFAULT_ADMIN_NAME, config.DEFAULT_ADMIN_EMAIL,
                                         config.DEFAULT_ADMIN_PASS)
        if not RbacService.has_role(s, admin, ADMIN_ROLE):
            RbacService.assign_role(s, admin, ADMIN_ROLE)
        s.commit()
    except MotelException as e:
        s.rollback()
        logger.error(f"默认数据初始化失败: {e}")
    finally:
        s.close()


def _set_session_cookie_js(token, max_age=28800):
    js = f"""<script>
    localStorage.setItem('motel_session', '{token}');
    </script>"""
    components.html(js, height=0)


def _clear_session_cookie_js():
    js = """<script>
    localStorage.removeItem('motel_session');
    </script>"""
    components.html(js, height=0)


def _read_session_from_storage():
    """通过 JavaScript 读取 localStorage 中的 session"""
    js_code = """
    <script>
    (function() {
        var token = localStorage.getItem('motel_session');
        if (token && !window.location.search.includes('session=')) {
            var url = new URL(window.location.href);
            url.searchParams.set('session', token);
            window.location.replace(url.toString());
        }
    })();
    </script>
    """
    components.html(js_code, height=0)


def _remember(user):
    st.session_state.logged_in = True
    st.session_state.user_id = user.id
    st.session_state.user_email = user.email
    st.session_state.user_name = user.name


def _register_form():
    with st.form("register"):
        name = st.text_input("姓名")
        email = st.text_input("邮箱")
        password = st.text_input("密码", type="password")
        if st.form_submit_button("注册", use_container_width=True):
            s = SessionLocal()
            try:
                user = AuthService.register(s, name, email, password)
                RbacService.assign_role(s, user, 'user')
                s.commit()
                AuditService.log(user.email, "注册账号", "Auth")
                st.success("注册成功，请登录")
            except MotelException as e:
                s.rollback()
                st.error(f"注册失败: {e}")
            finally:
                s.close()


def check_login():
    """登录检查"""
    if st.session_state.get('logged_in'):
        return True

    # 尝试从URL参数恢复会话
    token = st.query_params.get('session')
    if token:
        s = SessionLocal()
        try:
            user = AuthService.validate_token(s, token)
            if user:
                _remember(user)
                return True
        finally:
            s.close()

    _read_session_from_storage()

    c1, c2, c3 = st.columns([1, 2, 1])
    with c2:
        st.markdown(f"## 🔐 {config.APP_NAME}")
        t1, t2 = st.tabs(["登录", "注册"])
        with t1:
            email = st.text_input("邮箱")
            password = st.text_input("密码", type="password")
            if st.button("登录系统", use_container_width=True):
                if AuthService.is_locked((email or '').strip().lower()):
                    st.error("账号已锁定，请稍后再试")
                    return False
                s = SessionLocal()
                try:
                    user = AuthService.authenticate(s, email, password)
                    if user:
                        token = AuthService.create_session(s, user.id, config.SESSION_HOURS)
                        _remember(user)
                        AuditService.log(user.email, "系统登录", "Auth")
                        _set_session_cookie_js(token)
                        st.success(f"登录成功！欢迎, {user.name}")
                        st.rerun()
                    else:
                        st.error("邮箱或密码错误")
                finally:
                    s.close()
        with t2:
            _register_form()
    return False


def logout():
    """退出登录"""
    if st.session_state.get('user_email'):
        AuditService.log(st.session_state.user_email, "系统登出", "Auth")
    s = SessionLocal()
    try:
        AuthService.clear_token(s, user_id=st.session_state.get('user_id'))
    finally:
        s.close()
    _clear_session_cookie_js()
    for key in ['logged_in', 'user_id', 'user_email', 'user_name', 'current_page']:
        st.session_state.pop(key, None)
    st.rerun()


# 页面映射: 名称 -> (页面函数, 所需权限; None 表示登录即可)
PAGES = {
    "🛏️ 预订房间": (page_book_room, None),
    "🧾 我的预订": (page_my_bookings, None),
    "💡 我的账单": (page_my_invoices, None),
    "🏨 房间档案": (page_rooms, 'view-rooms'),
    "📋 预订管理": (page_bookings, 'view-bookings'),
    "⚡ 电表抄表": (page_electricity, 'manage-utilities'),
    "🧾 账单管理": (page_invoices, 'view-invoices'),
    "⚙️ 水电费率": (page_utility_settings, 'manage-utilities'),
    "🔐 角色权限": (page_roles, 'assign-roles'),
}

PAGE_GROUPS = {
    "租客": ["🛏️ 预订房间", "🧾 我的预订", "💡 我的账单"],
    "运营管理": ["🏨 房间档案", "📋 预订管理", "⚡ 电表抄表", "🧾 账单管理"],
    "系统设置": ["⚙️ 水电费率", "🔐 角色权限"],
}


def _allowed_pages():
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, s.get(User, st.session_state.user_id))
        is_admin = gate.has_role(ADMIN_ROLE)
        roles = ", ".join(sorted(RbacService.role_names(s, gate.principal))) if gate.principal else ""
        allowed = [name for name, (_, perm) in PAGES.items()
                   if perm is None or is_admin or gate.has_permission(perm)]
        return allowed, roles
    finally:
        s.close()


def main():
    _seed_defaults()

    if not check_login():
        return

    user = st.session_state.user_email
    allowed, role = _allowed_pages()

    st.sidebar.markdown(f"👤 **{st.session_state.user_name}** ({role or '无角色'})")
    st.sidebar.divider()

    for group, pages in PAGE_GROUPS.items():
        visible = [p for p in pages if p in allowed]
        if not visible:
            continue
        with st.sidebar.expander(group, expanded=True):
            for p in visible:
                if st.button(p, key=f"nav_{p}", use_container_width=True):
                    st.session_state.current_page = p

    page = st.session_state.get('current_page', allowed[0])
    if page not in allowed:
        page = allowed[0]

    st.sidebar.divider()
    if st.sidebar.button("🚪 退出登录", use_container_width=True):
        logout()

    PAGES[page][0](user, role)


if __name__ == '__main__':
    main()
