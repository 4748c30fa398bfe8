"""
Centralized error handling for the document builder.

Provides the user-facing error hierarchy (messages are shown verbatim in the
UI, so they are written in Korean) and a decorator for consistent log-and-fallback behavior.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


# ============================================================================
# User-facing errors
# ============================================================================

class UserFacingError(Exception):
    """
    Error whose message is safe to show to the user.

    Attributes:
        message: Display message
        status: HTTP status the web layer should answer with
    """

    status: int = 400
    default_message: str = "요청을 처리하지 못했습니다."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message}


class AuthRequiredError(UserFacingError):
    status = 401
    default_message = "로그인이 필요합니다."


class NotFoundError(UserFacingError):
    status = 404
    default_message = "문서를 찾을 수 없습니다."


class OwnershipError(UserFacingError):
    status = 403
    default_message = "문서에 대한 권한이 없습니다."


class ValidationError(UserFacingError):
    status = 400
    default_message = "입력값을 확인해주세요."


class UploadError(UserFacingError):
    status = 400
    default_message = "이미지를 읽지 못했습니다."


class AiRewriteError(UserFacingError):
    status = 502
    default_message = "AI 처리 중 문제가 발생했습니다. 잠시 후 다시 시도해주세요."


class QuotaBlockedError(UserFacingError):
    status = 429
    default_message = "검색 한도를 초과했습니다. 잠시 후 다시 시도해주세요."


# ============================================================================
# Decorator
# ============================================================================

def guarded_operation(
    operation_name: str,
    component: str = "unknown",
    critical: bool = False,
    log_success: bool = False,
    fallback_value: Any = None,
    reraise: bool = False,
):
    """
    Decorator for operations with consistent error handling.

    Provides:
    - Optional INFO logging on success
    - ERROR logging (with stack trace) on failure for critical operations
    - WARNING logging on failure for non-critical operations
    - Optional re-raising of exceptions

    UserFacingError is always re-raised: it already carries the message the
    caller is expected to show.

    Works on both plain functions and coroutine functions.

    Usage:
        @guarded_operation("news search", component="company_brief", fallback_value=[])
        async def _search_news(self, query: str):
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        logger = logging.getLogger(func.__module__)

        def _on_failure(e: Exception):
            log_level = logging.ERROR if critical else logging.WARNING
            logger.log(
                log_level,
                f"[{component}] [{operation_name}] ✗ Failed: {e}",
                exc_info=critical,
            )

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    result = await func(*args, **kwargs)
                except UserFacingError:
                    raise
                except Exception as e:
                    _on_failure(e)
                    if reraise:
                        raise
                    return fallback_value
                if log_success:
                    logger.info(f"[{component}] [{operation_name}] ✓ Completed successfully")
                return result

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                result = func(*args, **kwargs)
            except UserFacingError:
                raise
            except Exception as e:
                _on_failure(e)
                if reraise:
                    raise
                return fallback_value
            if log_success:
                logger.info(f"[{component}] [{operation_name}] ✓ Completed successfully")
            return result

        return wrapper

    return decorator
