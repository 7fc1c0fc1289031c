class SaveError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(SaveError, ValueError):
    status_code = 400


class ReadOnlyMonth(SaveError):
    status_code = 403

    def __init__(self, month_key: str) -> None:
        super().__init__("This month is read-only.")
        self.month_key = month_key


class UnknownCategory(SaveError, ValueError):
    status_code = 400

    def __init__(self, category_id: str) -> None:
        super().__init__(f"Invalid category_id: {category_id}")
        self.category_id = category_id


class VersionConflict(SaveError):
    status_code = 409

    def __init__(self, month_key: str, expected_version: int) -> None:
        super().__init__("Please fetch latest and re-apply changes.")
        self.month_key = month_key
        self.expected_version = expected_version


class StorageFault(SaveError, RuntimeError):
    status_code = 500

    def __init__(self, message: str = "Internal Server Error") -> None:
        super().__init__(message)
