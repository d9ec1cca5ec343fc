"""认证服务模块（登录边界，令牌签发之外的业务不依赖此处）"""
import datetime
import secrets
import bcrypt
from typing import Optional
from config import config, get_logger
from models import SessionLocal, User, LoginFail, SessionToken
from utils.exceptions import ConflictError, ValidationError

logger = get_logger(__name__)


class AuthService:
    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

    @staticmethod
    def check_password(plain: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(plain.encode(), hashed.encode())
        except ValueError as e:
            logger.error(f"密码校验失败: {e}")
            return False

    @staticmethod
    def register(s, name: str, email: str, password: str) -> User:
        """注册账号；邮箱唯一"""
        email = (email or '').strip().lower()
        if not name or not email or not password:
            raise ValidationError("姓名、邮箱和密码均为必填项",
                                  {k: ["必填"] for k, v in (("name", name), ("email", email), ("password", password)) if not v})
        if s.query(User).filter_by(email=email).first():
            raise ConflictError(f"邮箱 {email} 已注册")
        user = User(name=name, email=email, password_hash=AuthService.hash_password(password))
        s.add(user)
        s.flush()
        logger.info(f"注册用户: {email}")
        return user

    @staticmethod
    def authenticate(s, email: str, password: str) -> Optional[User]:
        """校验账号密码，处理失败计数与锁定"""
        email = (email or '').strip().lower()
        if AuthService.is_locked(email):
            logger.warning(f"账号 {email} 处于锁定状态")
            return None
        user = s.query(User).filter_by(email=email).first()
        if user and AuthService.check_password(password, user.password_hash):
            AuthService.clear_fail(email)
            return user
        AuthService.record_fail(email)
        return None

    @staticmethod
    def is_locked(email: str) -> bool:
        s = SessionLocal()
        try:
            rec = s.query(LoginFail).filter_by(email=email).first()
            if not rec or not rec.locked_until:
                return False
            return datetime.datetime.now() < rec.locked_until
        finally:
            s.close()

    @staticmethod
    def record_fail(email: str):
        s = SessionLocal()
        try:
            rec = s.query(LoginFail).filter_by(email=email).first()
            now = datetime.datetime.now()
            if not rec:
                rec = LoginFail(email=email, fail_count=1, updated_at=now)
                s.add(rec)
            elif not (rec.locked_until and now < rec.locked_until):
                rec.fail_count += 1
                rec.updated_at = now
                if rec.fail_count >= config.LOGIN_MAX_FAIL:
                    rec.locked_until = now + datetime.timedelta(minutes=config.LOCK_MINUTES)
                    logger.warning(f"账号 {email} 已锁定 {config.LOCK_MINUTES} 分钟")
            s.commit()
            logger.info(f"登录失败记录: {email}, 次数: {rec.fail_count}")
        finally:
            s.close()

    @staticmethod
    def clear_fail(email: str):
        s = SessionLocal()
        try:
            rec = s.query(LoginFail).filter_by(email=email).first()
            if rec:
                rec.fail_count = 0
                rec.locked_until = None
                s.commit()
        finally:
            s.close()

    @staticmethod
    def create_session(s, user_id: int, hours: int = None) -> str:
        hours = hours or config.SESSION_HOURS
        token = secrets.token_urlsafe(32)
        expires = datetime.datetime.now() + datetime.timedelta(hours=hours)
        s.add(SessionToken(token=token, user_id=user_id, expires_at=expires))
        s.commit()
        logger.info(f"创建会话: user_id={user_id}, 有效期={hours}小时")
        return token

    @staticmethod
    def validate_token(s, token: str) -> Optional[User]:
        if not token:
            return None
        rec = s.query(SessionToken).filter_by(token=token).first()
        if not rec:
            return None
        if rec.expires_at < datetime.datetime.now():
            s.delete(rec)
            s.commit()
            return None
        return s.get(User, rec.user_id)

    @staticmethod
    def clear_token(s, token: str = None, user_id: int = None):
        q = s.query(SessionToken)
        if token:
            q = q.filter_by(token=token)
        elif user_id:
            q = q.filter_by(user_id=user_id)
        else:
            return
        for r in q.all():
            s.delete(r)
        s.commit()
