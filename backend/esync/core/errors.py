"""
   同步流水线的领域异常。
   API 层把它们翻译成 HTTP 状态码；worker 只关心 MissingCredentialError（整单失败）。
"""


class SyncError(Exception):
    """Base for all catalog-sync domain errors."""


class InvalidRowsError(SyncError):
    """Empty or unusable input rows; nothing is persisted."""


class MissingCredentialError(SyncError):
    """No offline access token stored for the shop."""


class JobNotFoundError(SyncError):
    """Job does not exist or belongs to another shop."""


class ImportNotFoundError(SyncError):
    """Import does not exist, belongs to another job/shop, or is no longer PENDING."""


class InvalidTransitionError(SyncError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current_status: str, message: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message or f"Cannot cancel job with status '{current_status}'.")
