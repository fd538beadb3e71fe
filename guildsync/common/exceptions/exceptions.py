# guildsync/common/exceptions/exceptions.py
# =============================================================================
# Custom exceptions for GuildSync
# =============================================================================


class GuildSyncException(Exception):
    """Base exception for GuildSync"""
    pass


class ValidationError(GuildSyncException):
    """Raised when validation fails"""
    pass


class NotFoundError(GuildSyncException):
    """Raised when a resource is not found"""
    pass


class ConflictError(GuildSyncException):
    """Raised when there's a conflict (e.g., guild already linked to another tenant)"""
    pass


class ConfigurationError(GuildSyncException):
    """Raised when required configuration is missing or invalid"""
    pass


class InfrastructureError(GuildSyncException):
    """Raised for infrastructure errors"""
    pass


class GatewayError(InfrastructureError):
    """Raised when the Discord gateway cannot complete a call"""

    def __init__(self, message: str, kind: str = "transient"):
        super().__init__(message)
        self.kind = kind


class InteractionTokenError(ValidationError):
    """Raised when an interaction token cannot be encoded"""
    pass
