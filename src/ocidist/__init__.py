"""
ocidist: client-side OCI Distribution protocol.

Content addressing (Digest, Ref, Range), a composable request pipeline with
registry auth, chunked blob uploads and response classification.
"""
from .api import BlobsApi, ManifestsApi, ReferrersApi, Repo, TagsApi
from .byte_range import Range
from .client import Client, make_client
from .digest import Digest, HashAlgorithm, Hasher
from .endpoint import Endpoint
from .errors import ErrorCode, FormatError, OciError, RegistryError, ResponseError, UploadClosedError
from .ref import Ref, Reference
from .result import Content, Probe, Result, probe, result
from .settings import Settings, create_settings_from_env
from .transport import (
    Accept,
    Authenticator,
    HttpxTransport,
    PathPrefix,
    Pipeline,
    Retry,
    Stage,
    Transport,
    Unsecure,
)
from .upload import Chunk, UploadResult, UploadSession

__version__ = "0.1.0"

__all__ = [
    "Accept",
    "Authenticator",
    "BlobsApi",
    "Chunk",
    "Client",
    "Content",
    "Digest",
    "Endpoint",
    "ErrorCode",
    "FormatError",
    "HashAlgorithm",
    "Hasher",
    "HttpxTransport",
    "ManifestsApi",
    "OciError",
    "PathPrefix",
    "Pipeline",
    "Probe",
    "Range",
    "Ref",
    "Reference",
    "ReferrersApi",
    "RegistryError",
    "Repo",
    "ResponseError",
    "Result",
    "Retry",
    "Settings",
    "Stage",
    "TagsApi",
    "Transport",
    "Unsecure",
    "UploadClosedError",
    "UploadResult",
    "UploadSession",
    "create_settings_from_env",
    "make_client",
    "probe",
    "result",
]
