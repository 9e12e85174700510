"""BaseService: shared construction and error helpers for services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sxn.config.models import SxnConfig
from sxn.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    from sxn.config.settings import SxnSettings


class BaseService:
    """Base for service-layer classes.

    Services receive settings at construction and build engines per call;
    they never raise for expected failures, they return a failed
    :class:`ServiceResult` instead.
    """

    def __init__(self, settings: SxnSettings | SxnConfig | None = None) -> None:
        self._settings = settings if settings is not None else SxnConfig()

    @property
    def settings(self) -> SxnSettings | SxnConfig:
        return self._settings

    @staticmethod
    def _failure(
        op: str,
        code: str,
        message: str,
        *,
        detail: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> ServiceResult:
        return ServiceResult(
            ok=False,
            op=op,
            data=data or {},
            error=ServiceError(code=code, message=message, detail=detail or {}),
        )
