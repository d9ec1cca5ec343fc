"""预订请求数据结构

格式规则在服务端强制校验，不依赖前端：
身份证号 13 位数字、邮编 5 位数字、电话 0 开头共 10 位数字。
"""
import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from utils.exceptions import ValidationError

ID_CARD_PATTERN = r'^[0-9]{13}$'
POSTAL_CODE_PATTERN = r'^[0-9]{5}$'
PHONE_PATTERN = r'^0[0-9]{9}$'


class TenantPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    # 个人信息
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    id_card_number: str = Field(pattern=ID_CARD_PATTERN)
    date_of_birth: datetime.date
    # 地址
    current_address: str = Field(min_length=1, max_length=500)
    province: str = Field(min_length=1, max_length=100)
    district: str = Field(min_length=1, max_length=100)
    sub_district: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(pattern=POSTAL_CODE_PATTERN)
    # 联系方式
    phone_number: str = Field(pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    line_id: Optional[str] = Field(default=None, max_length=100)
    # 紧急联系人
    emergency_contact_name: str = Field(min_length=1, max_length=255)
    emergency_contact_relationship: str = Field(min_length=1, max_length=100)
    emergency_contact_phone: str = Field(pattern=PHONE_PATTERN)
    # 职业
    occupation: str = Field(min_length=1, max_length=255)
    workplace: Optional[str] = Field(default=None, max_length=255)
    monthly_income: Optional[Decimal] = Field(default=None, ge=0)
    # 已上传文件的存储路径
    id_card_copy_path: Optional[str] = None
    photo_path: Optional[str] = None

    @field_validator('date_of_birth')
    @classmethod
    def born_before_today(cls, v: datetime.date) -> datetime.date:
        if v >= datetime.date.today():
            raise ValueError("出生日期必须早于今天")
        return v


class BookingRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    room_id: int
    start_date: datetime.date
    end_date: datetime.date
    deposit_amount: Decimal = Field(ge=0)
    advance_payment: Decimal = Field(ge=0)
    special_conditions: Optional[str] = Field(default=None, max_length=1000)
    notes: Optional[str] = Field(default=None, max_length=500)
    tenant: TenantPayload

    @model_validator(mode='after')
    def end_after_start(self) -> 'BookingRequest':
        if self.end_date <= self.start_date:
            raise ValueError("结束日期必须晚于开始日期")
        return self


def _field_errors(exc: PydanticValidationError) -> dict:
    errors = {}
    for err in exc.errors():
        field = '.'.join(str(p) for p in err['loc']) or 'end_date'
        errors.setdefault(field, []).append(err['msg'])
    return errors


def parse_booking(payload) -> BookingRequest:
    """字典转为 BookingRequest，失败时抛出带字段信息的 ValidationError"""
    if isinstance(payload, BookingRequest):
        return payload
    try:
        return BookingRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("预订信息校验失败", _field_errors(e))
