"""测试公共夹具

在导入任何业务模块之前把数据库、审计日志和运行日志指向临时目录。
"""
import os
import sys
import tempfile
import datetime

_TMP = tempfile.mkdtemp(prefix="motel_test_")
os.environ["MOTEL_DB_PATH"] = os.path.join(_TMP, "motel_test.db")
os.environ["MOTEL_WORM_LOG"] = os.path.join(_TMP, "worm_audit.log")
os.environ["MOTEL_LOG_PATH"] = os.path.join(_TMP, "motel.log")
os.environ["MOTEL_BACKUP_DIR"] = os.path.join(_TMP, "backups")
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from models import SessionLocal, Base, engine, Room, User
from services.auth import AuthService
from services.rbac import RbacService

_HASHES = {}


def _hash(password):
    if password not in _HASHES:
        _HASHES[password] = AuthService.hash_password(password)
    return _HASHES[password]


@pytest.fixture
def db():
    """每个测试重建表结构"""
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    s = SessionLocal()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def seeded(db):
    RbacService.seed_defaults(db)
    db.commit()
    return db


@pytest.fixture
def make_user(seeded):
    """创建用户并分配角色"""
    counter = {"n": 0}

    def _make(*roles, name=None, email=None, password="secret123"):
        counter["n"] += 1
        n = counter["n"]
        user = User(name=name or f"User {n}", email=email or f"user{n}@example.com",
                    password_hash=_hash(password))
        seeded.add(user)
        seeded.flush()
        for role in roles:
            RbacService.assign_role(seeded, user, role)
        return user
    return _make


@pytest.fixture
def make_room(db):
    counter = {"n": 0}

    def _make(price="5000.00", status="available", name=None):
        counter["n"] += 1
        room = Room(name=name or f"R{100 + counter['n']}", type="Standard",
                    price_per_month=price, status=status, amenities=[])
        db.add(room)
        db.flush()
        return room
    return _make


def tenant_payload(id_card="1234567890123", **overrides):
    data = {
        "first_name": "Somchai", "last_name": "Jaidee",
        "id_card_number": id_card, "date_of_birth": datetime.date(1990, 5, 17),
        "current_address": "99 Sukhumvit Rd", "province": "Bangkok",
        "district": "Watthana", "sub_district": "Khlong Toei Nuea", "postal_code": "10110",
        "phone_number": "0812345678", "email": "somchai@example.com", "line_id": "somchai",
        "emergency_contact_name": "Somsri Jaidee", "emergency_contact_relationship": "Mother",
        "emergency_contact_phone": "0898765432",
        "occupation": "Engineer", "workplace": "ACME", "monthly_income": "45000",
    }
    data.update(overrides)
    return data


def booking_payload(room_id, start=datetime.date(2024, 1, 1), end=datetime.date(2024, 1, 31),
                    id_card="1234567890123", tenant=None, **overrides):
    data = {
        "room_id": room_id, "start_date": start, "end_date": end,
        "deposit_amount": "5000", "advance_payment": "5000",
        "special_conditions": None, "notes": None,
        "tenant": tenant or tenant_payload(id_card),
    }
    data.update(overrides)
    return data


TODAY = datetime.date(2024, 1, 1)


@pytest.fixture
def make_rental(seeded, make_user, make_room):
    """创建租约，可选直接批准/生效"""
    from services.booking import BookingService
    counter = {"n": 0}

    def _make(status="pending", room=None, user=None, start=datetime.date(2024, 1, 1),
              end=datetime.date(2024, 12, 31)):
        counter["n"] += 1
        room = room or make_room()
        user = user or make_user('user')
        id_card = f"{1000000000000 + counter['n']}"
        rental = BookingService.create_booking(seeded, user, booking_payload(room.id, start, end, id_card),
                                               today=TODAY)
        if status in ("approved", "active"):
            BookingService.approve(seeded, rental)
        if status == "active":
            BookingService.activate(seeded, rental)
        return rental
    return _make
