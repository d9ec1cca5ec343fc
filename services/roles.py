"""角色管理入口（授权 + 审计）"""
from typing import Iterable
from models import Role, User
from services.audit import AuditService
from services.gate import requires
from services.rbac import RbacService, RoleRef
from utils.exceptions import NotFoundError


def _get_user(s, user_id: int) -> User:
    user = s.get(User, user_id)
    if user is None:
        raise NotFoundError(f"用户不存在: {user_id}")
    return user


@requires('assign-roles')
def assign_role(s, user_id: int, role, actor=None, audit_buffer: list = None):
    user = _get_user(s, user_id)
    RbacService.assign_role(s, user, role)
    AuditService.log_deferred(s, audit_buffer, actor.email, "分配角色", user.email, {"role": str(role)})


@requires('assign-roles')
def remove_role(s, user_id: int, role, actor=None, audit_buffer: list = None):
    user = _get_user(s, user_id)
    RbacService.remove_role(s, user, role)
    AuditService.log_deferred(s, audit_buffer, actor.email, "移除角色", user.email, {"role": str(role)})


@requires('assign-roles')
def sync_roles(s, user_id: int, roles: Iterable, actor=None, audit_buffer: list = None):
    user = _get_user(s, user_id)
    roles = list(roles)
    RbacService.sync_roles(s, user, roles)
    AuditService.log_deferred(s, audit_buffer, actor.email, "同步角色", user.email,
                              {"roles": [str(r) for r in roles]})


@requires('assign-roles')
def sync_permissions(s, role, permissions: Iterable, actor=None, audit_buffer: list = None) -> Role:
    target = RoleRef.of(role).resolve(s)
    permissions = list(permissions)
    RbacService.sync_permissions(s, target, permissions)
    AuditService.log_deferred(s, audit_buffer, actor.email, "同步权限", target.name,
                              {"permissions": [str(p) for p in permissions]})
    return target


@requires('create-roles')
def create_role(s, name: str, display_name: str = None, description: str = None,
                actor=None, audit_buffer: list = None) -> Role:
    role = RbacService.create_role(s, name, display_name, description)
    AuditService.log_deferred(s, audit_buffer, actor.email, "创建角色", name)
    return role
