from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(self, message: str,
                 error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None,):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message='{self.message}', error_code='{self.error_code}')"


class ConfigurationError(AppException):
    """Exception raised for invalid run configuration."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        setting: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.setting = setting

        exception_details = details or {}
        if setting:
            exception_details["setting"] = setting

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=exception_details,
        )


class StagingError(AppException):
    """Exception raised when a table's unit of work cannot complete."""

    def __init__(
        self,
        message: str = "Staging failed",
        table: Optional[str] = None,
        error_code: str = "STAGING_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.table = table

        exception_details = details or {}
        if table:
            exception_details["table"] = table

        super().__init__(
            message=message,
            error_code=error_code,
            details=exception_details,
        )


class MalformedRecordError(StagingError):
    """
    Exception raised when the text reconstructed for a record is not valid
    JSON, or the record cannot be identified.
    """

    def __init__(
        self,
        message: str = "Malformed record",
        table: Optional[str] = None,
        record_text: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.record_text = record_text

        exception_details = details or {}
        if record_text is not None:
            exception_details["record_text"] = record_text[:200]

        super().__init__(
            message=message,
            table=table,
            error_code="MALFORMED_RECORD",
            details=exception_details,
        )


class PageCountError(StagingError):
    """Exception raised when a page count marker exists but cannot be read."""

    def __init__(
        self,
        message: str = "Unable to read page count",
        table: Optional[str] = None,
        file_path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.file_path = file_path

        exception_details = details or {}
        if file_path:
            exception_details["file_path"] = file_path

        super().__init__(
            message=message,
            table=table,
            error_code="PAGE_COUNT_ERROR",
            details=exception_details,
        )


class DatabaseError(AppException):
    """Exception raised for database-related errors."""

    def __init__(
        self,
        message: str = "Database error occurred",
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation

        exception_details = details or {}
        if operation:
            exception_details["operation"] = operation

        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            details=exception_details,
        )
