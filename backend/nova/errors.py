class NovaError(RuntimeError):
    """
    API側で扱う例外の基底。
    - code/status_code を持たせ、どこで発生しても {"error": message} の一貫したレスポンスにマップする。
    """

    code: str = "NOVA_ERROR"
    status_code: int = 500

    def __init__(self, message: str = "Internal error", *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class InvalidInputError(NovaError):
    code = "INVALID_INPUT"
    status_code = 400


class UnauthorizedError(NovaError):
    code = "UNAUTHORIZED"
    status_code = 401


class NotFoundError(NovaError):
    code = "NOT_FOUND"
    status_code = 404


class PayloadTooLargeError(NovaError):
    code = "PAYLOAD_TOO_LARGE"
    status_code = 413


class StorageWriteError(NovaError):
    code = "STORAGE_WRITE_FAILED"
    status_code = 500


class MetadataWriteError(NovaError):
    code = "METADATA_WRITE_FAILED"
    status_code = 500


class ColumnMetadataWriteError(NovaError):
    """カラムメタデータの一括保存失敗。呼び出し元には返さず、ログのみに残す。"""

    code = "COLUMN_METADATA_WRITE_FAILED"
    status_code = 500
