"""自定义异常类"""


class MotelException(Exception):
    """系统基础异常"""
    pass


class AuthenticationError(MotelException):
    """未登录（无主体）"""
    pass


class AuthorizationError(MotelException):
    """已登录但缺少角色或权限"""

    def __init__(self, message: str, missing: str = None):
        super().__init__(message)
        self.missing = missing


class ValidationError(MotelException):
    """数据验证错误，errors 为 字段 -> 错误信息列表"""

    def __init__(self, message: str, errors: dict = None):
        super().__init__(message)
        self.errors = errors or {}


class StateTransitionError(ValidationError):
    """非法的状态流转"""
    pass


class NotFoundError(MotelException):
    """引用的记录不存在"""
    pass


class ConflictError(MotelException):
    """唯一约束冲突；retryable 表示调用方可重试，errors 同 ValidationError"""

    def __init__(self, message: str, retryable: bool = False, errors: dict = None):
        super().__init__(message)
        self.retryable = retryable
        self.errors = errors or {}
