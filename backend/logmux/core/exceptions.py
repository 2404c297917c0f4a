from typing import Optional, Dict, Any
from fastapi import status


class AppException(Exception):
    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    def __init__(self, message: str = "Validation failed", code: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, status.HTTP_400_BAD_REQUEST, details)


class MissingRequiredFieldError(ValidationError):
    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(
            message or f"Missing required field: {field}",
            "MISSING_REQUIRED_FIELD",
            {"field": field}
        )


class ResourceError(AppException):
    pass


class ResourceNotFoundError(ResourceError):
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            "RESOURCE_NOT_FOUND",
            status.HTTP_404_NOT_FOUND,
            {"resource_type": resource_type, "resource_id": resource_id}
        )


class StreamingUnsupportedError(AppException):
    def __init__(self, message: str = "Streaming unsupported!"):
        super().__init__(message, "STREAMING_UNSUPPORTED", status.HTTP_500_INTERNAL_SERVER_ERROR)


class ExternalServiceError(AppException):
    pass


class DockerConnectionError(ExternalServiceError):
    def __init__(self, message: str = "Failed to connect to Docker daemon"):
        super().__init__(message, "DOCKER_CONNECTION_ERROR", status.HTTP_503_SERVICE_UNAVAILABLE)


class DockerOperationError(ExternalServiceError):
    def __init__(self, operation: str, message: str):
        super().__init__(
            f"Docker operation '{operation}' failed: {message}",
            "DOCKER_OPERATION_ERROR",
            status.HTTP_502_BAD_GATEWAY,
            {"operation": operation}
        )
