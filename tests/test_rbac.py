"""角色权限服务测试"""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import Role, Permission
from services.rbac import RbacService, RoleRef, PermissionRef, DEFAULT_PERMISSIONS
from utils.exceptions import ConflictError, NotFoundError, ValidationError


class TestSeedDefaults:
    """默认角色权限测试"""

    def test_seed_creates_catalogue(self, seeded):
        """测试默认权限与角色写入"""
        assert seeded.query(Permission).count() == len(DEFAULT_PERMISSIONS)
        assert {r.name for r in seeded.query(Role).all()} == {'admin', 'manager', 'user'}

    def test_seed_is_idempotent(self, seeded):
        """测试重复初始化不产生重复记录"""
        RbacService.seed_defaults(seeded)
        seeded.commit()
        assert seeded.query(Permission).count() == len(DEFAULT_PERMISSIONS)
        assert seeded.query(Role).count() == 3

    def test_admin_holds_every_permission(self, make_user, seeded):
        """测试 admin 拥有全部权限"""
        admin = make_user('admin')
        assert RbacService.effective_permissions(seeded, admin) == {p[0] for p in DEFAULT_PERMISSIONS}


class TestRoleChecks:
    """角色判断测试"""

    def test_has_role_single_and_list(self, make_user, seeded):
        """测试单个角色名与角色名列表"""
        user = make_user('manager')
        assert RbacService.has_role(seeded, user, 'manager')
        assert not RbacService.has_role(seeded, user, 'admin')
        assert RbacService.has_role(seeded, user, ['admin', 'manager'])
        assert not RbacService.has_role(seeded, user, [])

    def test_has_all_roles(self, make_user, seeded):
        """测试全部角色判断"""
        user = make_user('manager', 'user')
        assert RbacService.has_all_roles(seeded, user, ['manager', 'user'])
        assert not RbacService.has_all_roles(seeded, user, ['manager', 'admin'])
        assert RbacService.has_any_role(seeded, user, ['admin', 'user'])

    def test_user_without_roles(self, make_user, seeded):
        """测试无角色用户"""
        user = make_user()
        assert RbacService.role_names(seeded, user) == set()
        assert not RbacService.has_permission(seeded, user, 'view-rooms')


class TestPermissions:
    """权限判断测试"""

    def test_permission_union_over_roles(self, make_user, seeded):
        """测试权限为所有角色权限的并集"""
        user = make_user('user')
        assert RbacService.has_permission(seeded, user, 'view-rooms')
        assert not RbacService.has_permission(seeded, user, 'approve-bookings')
        RbacService.assign_role(seeded, user, 'manager')
        assert RbacService.has_permission(seeded, user, 'approve-bookings')

    def test_revoke_takes_effect_immediately(self, make_user, seeded):
        """测试撤销权限后立即生效"""
        user = make_user('manager')
        manager = RoleRef.of('manager').resolve(seeded)
        assert RbacService.has_permission(seeded, user, 'approve-bookings')
        RbacService.revoke_permission(seeded, manager, 'approve-bookings')
        assert not RbacService.has_permission(seeded, user, 'approve-bookings')
        assert not RbacService.role_has_permission(seeded, manager, 'approve-bookings')

    def test_give_permission_by_id(self, make_user, seeded):
        """测试按 id 授予权限"""
        user = make_user('user')
        role = RoleRef.of('user').resolve(seeded)
        perm = seeded.query(Permission).filter_by(name='view-invoices').one()
        RbacService.give_permission(seeded, role, perm.id)
        assert RbacService.role_has_permission(seeded, role, perm)
        assert RbacService.has_permission(seeded, user, 'view-invoices')

    def test_give_duplicate_permission_conflicts(self, seeded):
        """测试重复授予权限冲突"""
        role = RoleRef.of('user').resolve(seeded)
        with pytest.raises(ConflictError):
            RbacService.give_permission(seeded, role, 'view-rooms')

    def test_sync_permissions_replaces_set(self, seeded):
        """测试整体替换角色权限"""
        role = RoleRef.of('user').resolve(seeded)
        RbacService.sync_permissions(seeded, role, ['view-bookings', 'view-invoices'])
        assert {p.name for p in role.permissions} == {'view-bookings', 'view-invoices'}


class TestRoleAssignment:
    """角色分配测试"""

    def test_assign_and_remove(self, make_user, seeded):
        """测试分配与移除角色"""
        user = make_user()
        RbacService.assign_role(seeded, user, 'manager')
        assert RbacService.has_role(seeded, user, 'manager')
        assert [r.name for r in user.roles] == ['manager']
        RbacService.remove_role(seeded, user, 'manager')
        assert not RbacService.has_role(seeded, user, 'manager')

    def test_assign_by_entity_and_id(self, make_user, seeded):
        """测试按实体和 id 引用角色"""
        user = make_user()
        manager = seeded.query(Role).filter_by(name='manager').one()
        RbacService.assign_role(seeded, user, manager)
        admin = seeded.query(Role).filter_by(name='admin').one()
        RbacService.assign_role(seeded, user, admin.id)
        assert RbacService.role_names(seeded, user) == {'manager', 'admin'}

    def test_duplicate_assign_conflicts(self, make_user, seeded):
        """测试重复分配抛出冲突"""
        user = make_user('user')
        with pytest.raises(ConflictError):
            RbacService.assign_role(seeded, user, 'user')
        assert RbacService.role_names(seeded, user) == {'user'}

    def test_unknown_role_not_found(self, make_user, seeded):
        """测试未知角色"""
        user = make_user()
        with pytest.raises(NotFoundError):
            RbacService.assign_role(seeded, user, 'ghost')
        with pytest.raises(NotFoundError):
            RbacService.assign_role(seeded, user, 9999)

    def test_sync_roles_replaces_set(self, make_user, seeded):
        """测试整体替换用户角色"""
        user = make_user('user', 'manager')
        RbacService.sync_roles(seeded, user, ['admin'])
        assert RbacService.role_names(seeded, user) == {'admin'}
        RbacService.sync_roles(seeded, user, [])
        assert RbacService.role_names(seeded, user) == set()

    def test_sync_roles_unknown_keeps_existing(self, make_user, seeded):
        """测试同步失败时保持原角色"""
        user = make_user('user')
        with pytest.raises(NotFoundError):
            RbacService.sync_roles(seeded, user, ['admin', 'ghost'])
        assert RbacService.role_names(seeded, user) == {'user'}


class TestReferences:
    """角色/权限引用测试"""

    def test_ref_of_variants(self, seeded):
        """测试引用构造"""
        assert RoleRef.of('admin') == RoleRef(name='admin')
        assert RoleRef.of(3) == RoleRef(id=3)
        assert PermissionRef.of(PermissionRef(name='x')) == PermissionRef(name='x')

    def test_ref_rejects_other_types(self):
        """测试非法引用类型"""
        with pytest.raises(TypeError):
            RoleRef.of(1.5)
        with pytest.raises(TypeError):
            RoleRef.of(True)

    def test_create_role(self, seeded):
        """测试创建角色"""
        role = RbacService.create_role(seeded, 'accountant', 'Accountant')
        assert role.id is not None
        with pytest.raises(ConflictError):
            RbacService.create_role(seeded, 'accountant')
        with pytest.raises(ValidationError):
            RbacService.create_role(seeded, '')


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
