"""又拍云存储 (UPYUN USS) Python API 客户端 - https://help.upyun.com/knowledge-base/rest_api/"""

from upyunapi.client import UpyunClient
from upyunapi.errors import (
    ConfigurationError,
    DangerousOperationError,
    NotFoundError,
    OperationCancelledError,
    RateLimitedError,
    ServerError,
    TransientFolderNotEmptyError,
    TransportError,
    UpyunError,
)
from upyunapi.models import (
    END_OF_LISTING,
    DeleteResult,
    DirEntry,
    ListDirResult,
    ServiceIdentity,
    entry_is_folder,
    entry_modified,
    entry_size,
)

__all__ = [
    "UpyunClient",
    "ServiceIdentity",
    "DirEntry",
    "ListDirResult",
    "DeleteResult",
    "END_OF_LISTING",
    "entry_is_folder",
    "entry_size",
    "entry_modified",
    "UpyunError",
    "ConfigurationError",
    "DangerousOperationError",
    "OperationCancelledError",
    "TransportError",
    "NotFoundError",
    "RateLimitedError",
    "ServerError",
    "TransientFolderNotEmptyError",
]
