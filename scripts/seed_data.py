#!/usr/bin/env python3
"""初始化数据脚本：默认角色权限、管理员账号与示例房间

用法:
    python scripts/seed_data.py                       # 初始化全部
    python scripts/seed_data.py --assign-admin EMAIL  # 为已有用户分配 admin 角色
"""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config, get_logger
from models import SessionLocal, Base, engine, Room, User
from services.auth import AuthService
from services.rbac import RbacService, ADMIN_ROLE
from utils.exceptions import MotelException

logger = get_logger(__name__)

SAMPLE_ROOMS = [
    ("A101", "Standard", "3500.00", ["air-conditioner", "wifi"]),
    ("A102", "Standard", "3500.00", ["air-conditioner", "wifi"]),
    ("B201", "Deluxe", "5000.00", ["air-conditioner", "wifi", "water-heater", "fridge"]),
    ("B202", "Deluxe", "5000.00", ["air-conditioner", "wifi", "water-heater", "fridge"]),
]


def init_roles(s):
    """初始化角色与权限"""
    RbacService.seed_defaults(s)
    s.commit()
    print("✅ 角色与权限初始化完成")


def init_admin(s) -> User:
    """初始化管理员"""
    admin = s.query(User).filter_by(email=config.DEFAULT_ADMIN_EMAIL).first()
    if not admin:
        admin = AuthService.register(s, config.DEFAULT_ADMIN_NAME, config.DEFAULT_ADMIN_EMAIL,
                                     config.DEFAULT_ADMIN_PASS)
    if not RbacService.has_role(s, admin, ADMIN_ROLE):
        RbacService.assign_role(s, admin, ADMIN_ROLE)
    s.commit()
    print(f"✅ 管理员初始化完成: {admin.email}")
    return admin


def init_rooms(s):
    """初始化示例房间"""
    created = 0
    for name, rtype, price, amenities in SAMPLE_ROOMS:
        if not s.query(Room).filter_by(name=name).first():
            s.add(Room(name=name, type=rtype, price_per_month=price, amenities=amenities))
            created += 1
    s.commit()
    print(f"✅ 示例房间初始化完成: 新增 {created} 间")


def assign_admin(s, email: str) -> bool:
    """为已注册用户分配 admin 角色"""
    user = s.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        print(f"❌ 用户不存在: {email}")
        return False
    if RbacService.has_role(s, user, ADMIN_ROLE):
        print(f"ℹ️ {email} 已是管理员")
        return True
    RbacService.assign_role(s, user, ADMIN_ROLE)
    s.commit()
    logger.info(f"命令行分配管理员: {email}")
    print(f"✅ 已为 {email} 分配 admin 角色")
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(description="初始化旅馆租赁管理系统数据")
    parser.add_argument("--assign-admin", metavar="EMAIL", help="为已有用户分配 admin 角色")
    args = parser.parse_args(argv)

    Base.metadata.create_all(engine)
    s = SessionLocal()
    try:
        init_roles(s)
        if args.assign_admin:
            return 0 if assign_admin(s, args.assign_admin) else 1
        init_admin(s)
        init_rooms(s)
        print(f"\n管理员账号: {config.DEFAULT_ADMIN_EMAIL} / {config.DEFAULT_ADMIN_PASS}")
        return 0
    except MotelException as e:
        s.rollback()
        print(f"❌ 初始化失败: {e}")
        return 1
    finally:
        s.close()


if __name__ == "__main__":
    sys.exit(main())
