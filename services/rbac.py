"""角色权限服务模块

用户 <-> 角色、角色 <-> 权限 均为多对多关系。所有判断每次实时查询，
不缓存权限集合，角色或权限变更后立即生效。
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Set, Union
from sqlalchemy import delete, insert
from sqlalchemy.exc import IntegrityError
from config import get_logger
from models import Role, Permission, User, role_user, permission_role
from utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = get_logger(__name__)

ADMIN_ROLE = 'admin'

# 默认权限目录 (name, display_name, description, group)
DEFAULT_PERMISSIONS = [
    ('view-users', 'View Users', 'Can view user list', 'users'),
    ('create-users', 'Create Users', 'Can create new users', 'users'),
    ('edit-users', 'Edit Users', 'Can edit user information', 'users'),
    ('delete-users', 'Delete Users', 'Can delete users', 'users'),
    ('view-rooms', 'View Rooms', 'Can view room list', 'rooms'),
    ('create-rooms', 'Create Rooms', 'Can create new rooms', 'rooms'),
    ('edit-rooms', 'Edit Rooms', 'Can edit room information', 'rooms'),
    ('delete-rooms', 'Delete Rooms', 'Can delete rooms', 'rooms'),
    ('view-bookings', 'View Bookings', 'Can view all bookings', 'bookings'),
    ('approve-bookings', 'Approve Bookings', 'Can approve booking requests', 'bookings'),
    ('reject-bookings', 'Reject Bookings', 'Can reject booking requests', 'bookings'),
    ('view-roles', 'View Roles', 'Can view role list', 'roles'),
    ('create-roles', 'Create Roles', 'Can create new roles', 'roles'),
    ('edit-roles', 'Edit Roles', 'Can edit role information', 'roles'),
    ('delete-roles', 'Delete Roles', 'Can delete roles', 'roles'),
    ('assign-roles', 'Assign Roles', 'Can assign roles to users', 'roles'),
    ('view-invoices', 'View Invoices', 'Can view all invoices', 'invoices'),
    ('manage-invoices', 'Manage Invoices', 'Can generate invoices and record payment status', 'invoices'),
    ('manage-utilities', 'Manage Utilities', 'Can record meter readings and edit utility rates', 'utilities'),
]

# 默认角色 (name, display_name, description, 权限列表; None 表示全部权限)
DEFAULT_ROLES = [
    (ADMIN_ROLE, 'Administrator', 'Full system access with all permissions', None),
    ('manager', 'Manager', 'Can manage rooms and bookings', [
        'view-users',
        'view-rooms', 'create-rooms', 'edit-rooms', 'delete-rooms',
        'view-bookings', 'approve-bookings', 'reject-bookings',
        'view-invoices', 'manage-invoices', 'manage-utilities',
    ]),
    ('user', 'User', 'Regular user with basic access', ['view-rooms']),
]


@dataclass(frozen=True)
class _Ref:
    """按 id 或 name 引用一条记录，解析一次后得到规范 id"""
    id: Optional[int] = None
    name: Optional[str] = None

    model = None
    label = ''

    @classmethod
    def of(cls, value) -> '_Ref':
        if isinstance(value, cls):
            return value
        if isinstance(value, cls.model):
            return cls(id=value.id, name=value.name)
        if isinstance(value, bool):
            raise TypeError(f"无效的{cls.label}引用: {value!r}")
        if isinstance(value, int):
            return cls(id=value)
        if isinstance(value, str):
            return cls(name=value)
        raise TypeError(f"无效的{cls.label}引用: {value!r}")

    def resolve(self, s):
        """返回实体；不存在时抛出 NotFoundError"""
        if self.id is not None:
            obj = s.get(self.model, self.id)
        else:
            obj = s.query(self.model).filter_by(name=self.name).first()
        if obj is None:
            raise NotFoundError(f"{self.label}不存在: {self.name if self.id is None else self.id}")
        return obj


@dataclass(frozen=True)
class RoleRef(_Ref):
    model = Role
    label = '角色'


@dataclass(frozen=True)
class PermissionRef(_Ref):
    model = Permission
    label = '权限'


RoleLike = Union[RoleRef, Role, int, str]
PermissionLike = Union[PermissionRef, Permission, int, str]


def _names(roles) -> list:
    if isinstance(roles, str):
        return [roles]
    return list(roles or [])


class RbacService:
    # ---------- 用户 -> 角色 ----------
    @staticmethod
    def role_names(s, user: User) -> Set[str]:
        rows = s.query(Role.name).join(role_user, role_user.c.role_id == Role.id) \
            .filter(role_user.c.user_id == user.id).all()
        return {r[0] for r in rows}

    @staticmethod
    def has_role(s, user: User, roles: Union[str, Iterable[str]]) -> bool:
        """单个角色名或角色名列表（任一即可）"""
        names = _names(roles)
        if not names:
            return False
        return s.query(role_user.c.role_id) \
            .join(Role, Role.id == role_user.c.role_id) \
            .filter(role_user.c.user_id == user.id, Role.name.in_(names)) \
            .first() is not None

    @staticmethod
    def has_any_role(s, user: User, roles: Iterable[str]) -> bool:
        return RbacService.has_role(s, user, list(roles))

    @staticmethod
    def has_all_roles(s, user: User, roles: Iterable[str]) -> bool:
        for name in roles:
            if not RbacService.has_role(s, user, name):
                return False
        return True

    @staticmethod
    def effective_permissions(s, user: User) -> Set[str]:
        """用户所有角色权限的并集"""
        rows = s.query(Permission.name) \
            .join(permission_role, permission_role.c.permission_id == Permission.id) \
            .join(role_user, role_user.c.role_id == permission_role.c.role_id) \
            .filter(role_user.c.user_id == user.id).all()
        return {r[0] for r in rows}

    @staticmethod
    def has_permission(s, user: User, permission: str) -> bool:
        return permission in RbacService.effective_permissions(s, user)

    @staticmethod
    def assign_role(s, user: User, role: RoleLike):
        """重复分配会触发唯一约束，由调用方先用 has_role 判断"""
        target = RoleRef.of(role).resolve(s)
        try:
            with s.begin_nested():
                s.execute(insert(role_user).values(user_id=user.id, role_id=target.id))
        except IntegrityError:
            raise ConflictError(f"用户 {user.email} 已拥有角色 {target.name}")
        s.expire(user, ['roles'])
        logger.info(f"分配角色: {user.email} <- {target.name}")

    @staticmethod
    def remove_role(s, user: User, role: RoleLike):
        target = RoleRef.of(role).resolve(s)
        s.execute(delete(role_user).where(role_user.c.user_id == user.id, role_user.c.role_id == target.id))
        s.expire(user, ['roles'])
        logger.info(f"移除角色: {user.email} -> {target.name}")

    @staticmethod
    def sync_roles(s, user: User, roles: Iterable[RoleLike]):
        """整体替换用户角色：先删除全部，再写入给定集合"""
        targets = {}
        for ref in roles:
            role = RoleRef.of(ref).resolve(s)
            targets[role.id] = role
        with s.begin_nested():
            s.execute(delete(role_user).where(role_user.c.user_id == user.id))
            for role_id in targets:
                s.execute(insert(role_user).values(user_id=user.id, role_id=role_id))
        s.expire(user, ['roles'])
        logger.info(f"同步角色: {user.email} = {sorted(r.name for r in targets.values())}")

    # ---------- 角色 -> 权限 ----------
    @staticmethod
    def role_has_permission(s, role: Role, permission: PermissionLike) -> bool:
        ref = PermissionRef.of(permission)
        q = s.query(permission_role.c.permission_id) \
            .join(Permission, Permission.id == permission_role.c.permission_id) \
            .filter(permission_role.c.role_id == role.id)
        if ref.id is not None:
            q = q.filter(Permission.id == ref.id)
        else:
            q = q.filter(Permission.name == ref.name)
        return q.first() is not None

    @staticmethod
    def give_permission(s, role: Role, permission: PermissionLike):
        target = PermissionRef.of(permission).resolve(s)
        try:
            with s.begin_nested():
                s.execute(insert(permission_role).values(role_id=role.id, permission_id=target.id))
        except IntegrityError:
            raise ConflictError(f"角色 {role.name} 已拥有权限 {target.name}")
        s.expire(role, ['permissions'])
        logger.info(f"授予权限: {role.name} <- {target.name}")

    @staticmethod
    def revoke_permission(s, role: Role, permission: PermissionLike):
        target = PermissionRef.of(permission).resolve(s)
        s.execute(delete(permission_role).where(
            permission_role.c.role_id == role.id, permission_role.c.permission_id == target.id))
        s.expire(role, ['permissions'])
        logger.info(f"撤销权限: {role.name} -> {target.name}")

    @staticmethod
    def sync_permissions(s, role: Role, permissions: Iterable[PermissionLike]):
        targets = {PermissionRef.of(p).resolve(s).id for p in permissions}
        with s.begin_nested():
            s.execute(delete(permission_role).where(permission_role.c.role_id == role.id))
            for pid in targets:
                s.execute(insert(permission_role).values(role_id=role.id, permission_id=pid))
        s.expire(role, ['permissions'])

    # ---------- 角色维护 ----------
    @staticmethod
    def create_role(s, name: str, display_name: str = None, description: str = None) -> Role:
        if not name:
            raise ValidationError("角色标识不能为空", {"name": ["必填"]})
        if s.query(Role).filter_by(name=name).first():
            raise ConflictError(f"角色 {name} 已存在")
        role = Role(name=name, display_name=display_name or name, description=description)
        s.add(role)
        s.flush()
        logger.info(f"创建角色: {name}")
        return role

    @staticmethod
    def seed_defaults(s):
        """写入默认权限目录与 admin/manager/user 角色，可重复执行"""
        for name, display_name, description, group in DEFAULT_PERMISSIONS:
            if not s.query(Permission).filter_by(name=name).first():
                s.add(Permission(name=name, display_name=display_name, description=description, group=group))
        s.flush()
        all_names = [p[0] for p in DEFAULT_PERMISSIONS]
        for name, display_name, description, perm_names in DEFAULT_ROLES:
            role = s.query(Role).filter_by(name=name).first()
            if not role:
                role = Role(name=name, display_name=display_name, description=description)
                s.add(role)
                s.flush()
            RbacService.sync_permissions(s, role, perm_names if perm_names is not None else all_names)
        logger.info("默认角色与权限初始化完成")
