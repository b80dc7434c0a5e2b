"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。

工具执行失败不属于这里的异常：ToolExecutor 会把失败吸收为结果文本，
保证单个工具的错误不会中断整轮对话。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、round 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class AuthError(BusinessError):
    """凭证缺失或被远端拒绝（HTTP 401/403），调用方需要重新获取 API Key。"""


class ApiError(BusinessError):
    """补全接口返回非 2xx 响应时抛出，message 中带有远端给出的错误详情。"""


class RateLimitError(ApiError):
    """Provider 限流错误（HTTP 429），由上层负责重试/退避策略。"""


class NetworkError(ApiError):
    """网络层错误，例如连接失败、超时等，没有拿到任何响应。"""
