"""数据库实体模型"""
import datetime
import uuid
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Text, Boolean,
    JSON, Table, UniqueConstraint
)
from sqlalchemy.orm import relationship
from .base import Base


# 状态常量
ROOM_AVAILABLE = 'available'
ROOM_OCCUPIED = 'occupied'
ROOM_MAINTENANCE = 'maintenance'
ROOM_STATUSES = (ROOM_AVAILABLE, ROOM_OCCUPIED, ROOM_MAINTENANCE)

RENTAL_PENDING = 'pending'
RENTAL_APPROVED = 'approved'
RENTAL_ACTIVE = 'active'
RENTAL_COMPLETED = 'completed'
RENTAL_CANCELLED = 'cancelled'
RENTAL_STATUSES = (RENTAL_PENDING, RENTAL_APPROVED, RENTAL_ACTIVE, RENTAL_COMPLETED, RENTAL_CANCELLED)

PAYMENT_PENDING = 'pending'
PAYMENT_PAID = 'paid'
PAYMENT_FAILED = 'failed'
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED)

INVOICE_UNPAID = 'unpaid'
INVOICE_PAID = 'paid'
INVOICE_OVERDUE = 'overdue'
INVOICE_STATUSES = (INVOICE_UNPAID, INVOICE_PAID, INVOICE_OVERDUE)


role_user = Table(
    'role_user', Base.metadata,
    Column('user_id', Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    Column('role_id', Integer, ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    Column('created_at', DateTime, default=datetime.datetime.now),
)

permission_role = Table(
    'permission_role', Base.metadata,
    Column('permission_id', Integer, ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    Column('role_id', Integer, ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    Column('created_at', DateTime, default=datetime.datetime.now),
)


class Role(Base):
    __tablename__ = 'roles'
    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100))
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.datetime.now)

    users = relationship("User", secondary=role_user, back_populates="roles")
    permissions = relationship("Permission", secondary=permission_role, back_populates="roles")

    def __repr__(self):
        return f'<Role {self.name}>'


class Permission(Base):
    __tablename__ = 'permissions'
    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100))
    description = Column(Text)
    group = Column(String(50))
    created_at = Column(DateTime, default=datetime.datetime.now)

    roles = relationship("Role", secondary=permission_role, back_populates="permissions")

    def __repr__(self):
        return f'<Permission {self.name}>'


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(120), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.now)

    roles = relationship("Role", secondary=role_user, back_populates="users")
    rentals = relationship("Rental", back_populates="user",
                           cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f'<User {self.email}>'


class Room(Base):
    __tablename__ = 'rooms'
    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)
    type = Column(String(50))
    price_per_month = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=ROOM_AVAILABLE)
    description = Column(Text)
    image_path = Column(String(255))
    amenities = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.datetime.now)

    rentals = relationship("Rental", back_populates="room", passive_deletes=True)
    electricity_usages = relationship("ElectricityUsage", back_populates="room", passive_deletes=True)

    def is_available(self) -> bool:
        return self.status == ROOM_AVAILABLE


class Rental(Base):
    __tablename__ = 'rentals'
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=RENTAL_PENDING, index=True)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    # 合同信息
    contract_number = Column(String(50), unique=True, nullable=True)
    contract_date = Column(Date)
    deposit_amount = Column(Numeric(10, 2), default=0)
    advance_payment = Column(Numeric(10, 2), default=0)
    monthly_rent = Column(Numeric(10, 2))
    special_conditions = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.datetime.now)
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)

    user = relationship("User", back_populates="rentals")
    room = relationship("Room", back_populates="rentals")
    tenant_information = relationship("TenantInformation", back_populates="rental", uselist=False,
                                      cascade="all, delete-orphan", passive_deletes=True)
    payments = relationship("Payment", back_populates="rental",
                            cascade="all, delete-orphan", passive_deletes=True)
    invoices = relationship("Invoice", back_populates="rental",
                            cascade="all, delete-orphan", passive_deletes=True)


class TenantInformation(Base):
    __tablename__ = 'tenant_information'
    id = Column(Integer, primary_key=True)
    rental_id = Column(Integer, ForeignKey('rentals.id', ondelete='CASCADE'), nullable=False, unique=True)
    # 个人信息
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    id_card_number = Column(String(13), unique=True, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    # 地址
    current_address = Column(String(500), nullable=False)
    province = Column(String(100), nullable=False)
    district = Column(String(100), nullable=False)
    sub_district = Column(String(100), nullable=False)
    postal_code = Column(String(5), nullable=False)
    # 联系方式
    phone_number = Column(String(10), nullable=False)
    email = Column(String(255))
    line_id = Column(String(100))
    # 紧急联系人
    emergency_contact_name = Column(String(255), nullable=False)
    emergency_contact_relationship = Column(String(100), nullable=False)
    emergency_contact_phone = Column(String(10), nullable=False)
    # 职业
    occupation = Column(String(255), nullable=False)
    workplace = Column(String(255))
    monthly_income = Column(Numeric(10, 2))
    # 证件文件路径（上传由外部处理）
    id_card_copy_path = Column(String(255))
    photo_path = Column(String(255))
    created_at = Column(DateTime, default=datetime.datetime.now)

    rental = relationship("Rental", back_populates="tenant_information")

    # 序列化时不输出的字段
    HIDDEN_FIELDS = ('id_card_number',)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def full_address(self) -> str:
        return f"{self.current_address}, {self.sub_district}, {self.district}, {self.province} {self.postal_code}"

    @property
    def masked_id_card(self) -> str:
        """身份证号脱敏，仅保留末两位"""
        if not self.id_card_number:
            return ''
        return 'XXXXX-XXXXX-' + self.id_card_number[-2:]

    def to_dict(self) -> dict:
        data = {
            c.name: getattr(self, c.name)
            for c in self.__table__.columns
            if c.name not in self.HIDDEN_FIELDS
        }
        data['masked_id_card'] = self.masked_id_card
        data['full_name'] = self.full_name
        return data


class Payment(Base):
    __tablename__ = 'payments'
    id = Column(Integer, primary_key=True)
    rental_id = Column(Integer, ForeignKey('rentals.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=PAYMENT_PENDING, index=True)
    payment_method = Column(String(50), nullable=False)
    slip_image_path = Column(String(255))
    created_at = Column(DateTime, default=datetime.datetime.now)

    rental = relationship("Rental", back_populates="payments")


class ElectricityUsage(Base):
    __tablename__ = 'electricity_usages'
    id = Column(Integer, primary_key=True)
    room_id = Column(Integer, ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False, index=True)
    reading_date = Column(Date, nullable=False, index=True)
    previous_units = Column(Integer, nullable=False, default=0)
    current_units = Column(Integer, nullable=False)
    units_used = Column(Integer, nullable=False, default=0)
    is_billed = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=datetime.datetime.now)

    room = relationship("Room", back_populates="electricity_usages")
    __table_args__ = (UniqueConstraint('room_id', 'reading_date', name='uq_reading_room_date'),)


class UtilityRate(Base):
    __tablename__ = 'utility_rates'
    id = Column(Integer, primary_key=True)
    electricity_rate_per_unit = Column(Numeric(10, 2), nullable=False, default=0)
    water_flat_rate = Column(Numeric(10, 2), nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)


class Invoice(Base):
    __tablename__ = 'invoices'
    id = Column(Integer, primary_key=True)
    rental_id = Column(Integer, ForeignKey('rentals.id', ondelete='CASCADE'), nullable=False, index=True)
    invoice_number = Column(String(20), unique=True, nullable=False)
    issue_date = Column(Date, nullable=False, index=True)
    due_date = Column(Date, nullable=False, index=True)
    room_rent = Column(Numeric(10, 2), nullable=False, default=0)
    electricity_charge = Column(Numeric(10, 2), nullable=False, default=0)
    water_charge = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=INVOICE_UNPAID, index=True)
    created_at = Column(DateTime, default=datetime.datetime.now)

    rental = relationship("Rental", back_populates="invoices")


class AuditLog(Base):
    __tablename__ = 'audit_logs'
    id = Column(Integer, primary_key=True)
    user = Column(String(120))
    action = Column(String(50))
    target = Column(String(100))
    details = Column(Text)
    trace_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True)
    created_at = Column(DateTime, default=datetime.datetime.now)
    worm_hash = Column(String(64), nullable=True)


class LoginFail(Base):
    __tablename__ = 'login_fail'
    id = Column(Integer, primary_key=True)
    email = Column(String(120), unique=True)
    fail_count = Column(Integer, default=0)
    locked_until = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.datetime.now)


class SessionToken(Base):
    __tablename__ = 'session_tokens'
    __table_args__ = (UniqueConstraint('token', name='uq_session_token'),)
    id = Column(Integer, primary_key=True)
    token = Column(String(128), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.now)
