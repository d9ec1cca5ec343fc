"""用户与角色权限页面"""
import streamlit as st
import pandas as pd
from models import SessionLocal, User, Role, Permission
from services.gate import AuthorizationGate
from services.rbac import RbacService
from services.roles import sync_roles, sync_permissions, create_role
from .common import run_action, load_actor


def page_roles(user, role):
    """权限管理"""
    st.title("🔐 角色与权限")
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, load_actor(s))
        if not (gate.has_permission('assign-roles') or gate.has_role('admin')):
            st.error("⛔️ 权限不足")
            return

        roles = s.query(Role).order_by(Role.id).all()
        role_names = [r.name for r in roles]
        t1, t2, t3 = st.tabs(["👥 用户角色", "🎭 角色权限", "➕ 新建角色"])

        with t1:
            users = s.query(User).order_by(User.id).all()
            st.dataframe(pd.DataFrame([{
                "ID": u.id, "姓名": u.name, "邮箱": u.email,
                "角色": ", ".join(sorted(RbacService.role_names(s, u))),
            } for u in users]), use_container_width=True, hide_index=True)
            u_map = {f"{u.name} <{u.email}>": u for u in users}
            target = u_map[st.selectbox("用户", list(u_map.keys()))]
            with st.form("user_roles"):
                selected = st.multiselect("角色", role_names, default=sorted(RbacService.role_names(s, target)))
                if st.form_submit_button("💾 保存角色"):
                    run_action("同步角色", sync_roles, target.id, selected)
            perms = sorted(RbacService.effective_permissions(s, target))
            st.caption("有效权限: " + (", ".join(perms) or "无"))

        with t2:
            permissions = s.query(Permission).order_by(Permission.group, Permission.id).all()
            matrix = []
            for p in permissions:
                row = {"分组": p.group, "权限": p.name}
                for r in roles:
                    row[r.name] = "✔" if RbacService.role_has_permission(s, r, p) else ""
                matrix.append(row)
            st.dataframe(pd.DataFrame(matrix), use_container_width=True, hide_index=True)
            r_map = {r.name: r for r in roles}
            curr = r_map[st.selectbox("角色", role_names)]
            with st.form("role_permissions"):
                granted = [p.name for p in curr.permissions]
                selected = st.multiselect("权限", [p.name for p in permissions], default=granted)
                if st.form_submit_button("💾 保存权限"):
                    run_action("同步权限", sync_permissions, curr.id, selected)

        with t3:
            with st.form("new_role"):
                name = st.text_input("角色标识", placeholder="如 accountant")
                display_name = st.text_input("显示名称")
                description = st.text_area("说明")
                if st.form_submit_button("✅ 创建"):
                    run_action("创建角色", create_role, name.strip(), display_name or None, description or None)
    finally:
        s.close()
