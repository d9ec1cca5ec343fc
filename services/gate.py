"""授权网关

包装所有变更类操作：先判断是否登录（对应 401），再判断角色/权限（对应 403）。
网关只给出布尔结果或抛出异常，不负责生成传输层响应。
"""
import functools
from typing import Iterable, Optional
from config import get_logger
from models import User
from services.rbac import RbacService, ADMIN_ROLE
from utils.exceptions import AuthenticationError, AuthorizationError

logger = get_logger(__name__)


class AuthorizationGate:
    def __init__(self, s, principal: Optional[User]):
        self.s = s
        self.principal = principal

    def is_authenticated(self) -> bool:
        return self.principal is not None

    def has_role(self, name) -> bool:
        return self.is_authenticated() and RbacService.has_role(self.s, self.principal, name)

    def has_permission(self, name: str) -> bool:
        return self.is_authenticated() and RbacService.has_permission(self.s, self.principal, name)

    def require_authenticated(self) -> User:
        if not self.is_authenticated():
            raise AuthenticationError("未登录")
        return self.principal

    def require_role(self, name: str) -> User:
        user = self.require_authenticated()
        if not RbacService.has_role(self.s, user, name):
            logger.warning(f"拒绝访问: {user.email} 缺少角色 {name}")
            raise AuthorizationError(f"Forbidden. You do not have the required role: {name}", missing=name)
        return user

    def require_permission(self, name: str) -> User:
        user = self.require_authenticated()
        if not RbacService.has_permission(self.s, user, name):
            logger.warning(f"拒绝访问: {user.email} 缺少权限 {name}")
            raise AuthorizationError(f"Forbidden. You do not have the required permission: {name}", missing=name)
        return user

    def require_any(self, permissions: Iterable[str] = (), roles: Iterable[str] = ()) -> User:
        """满足任一权限或任一角色即放行"""
        user = self.require_authenticated()
        permissions, roles = list(permissions), list(roles)
        if roles and RbacService.has_any_role(self.s, user, roles):
            return user
        if permissions:
            granted = RbacService.effective_permissions(self.s, user)
            if any(p in granted for p in permissions):
                return user
        missing = ', '.join(permissions + roles)
        logger.warning(f"拒绝访问: {user.email} 缺少 {missing}")
        raise AuthorizationError(f"Forbidden. You do not have the required permission: {missing}", missing=missing)


def requires(permission: str = None, roles: Iterable[str] = (ADMIN_ROLE,)):
    """服务函数装饰器：被装饰函数签名为 fn(s, ..., actor=..., ...)

    actor 为当前登录用户；permission 为空时仅要求已登录。
    """
    roles = tuple(roles)

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(s, *args, actor: Optional[User] = None, **kwargs):
            gate = AuthorizationGate(s, actor)
            if permission is None:
                gate.require_authenticated()
            else:
                gate.require_any([permission], roles)
            return fn(s, *args, actor=actor, **kwargs)
        return wrapper
    return decorator
