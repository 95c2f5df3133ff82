"""
Error Taxonomy

Client errors abort a request before any query runs. Upstream and
notification failures are isolated by the component that catches them.
"""

from typing import Any, Dict, Optional


class OpsDashboardError(Exception):
    """Base class for all service errors"""
    
    code = "internal_error"
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
    
    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ClientError(OpsDashboardError):
    """Request was malformed; surfaced as HTTP 400"""
    
    code = "bad_request"


class InvalidRange(ClientError):
    """Unparseable or contradictory from/to dates"""
    
    code = "invalid_range"


class InvalidParameter(ClientError):
    """Unknown keyword, interval, time zone, or non-numeric limit"""
    
    code = "invalid_parameter"


class UpstreamQueryFailure(OpsDashboardError):
    """The order or stock store failed while serving one sub-query"""
    
    code = "upstream_query_failure"
    
    def __init__(self, section: str, cause: BaseException):
        super().__init__(
            f"{section} query failed: {type(cause).__name__}: {cause}",
            details={"section": section},
        )
        self.section = section
        self.cause = cause


class NotificationDispatchFailure(OpsDashboardError):
    """The notification channel rejected or failed a dispatch"""
    
    code = "notification_dispatch_failure"
    
    def __init__(self, template_kind: str, reason: str):
        super().__init__(
            f"Dispatch of {template_kind} failed: {reason}",
            details={"template_kind": template_kind},
        )
        self.template_kind = template_kind
        self.reason = reason
