"""Install pipeline and its stages."""

from tm.install.cancel import Cancelled, CancelToken
from tm.install.checksum import parse_checksum_list, sha256_file, verify_digest
from tm.install.download import Downloader, DownloadResult
from tm.install.pipeline import InstallPipeline, InstallReport, InstallState
from tm.install.state import InstalledVersion, load_manifest
from tm.install.unpack import Unpacker, UnpackError, UnpackResult

__all__ = [
    "Cancelled",
    "CancelToken",
    "parse_checksum_list",
    "sha256_file",
    "verify_digest",
    "Downloader",
    "DownloadResult",
    "InstallPipeline",
    "InstallReport",
    "InstallState",
    "InstalledVersion",
    "load_manifest",
    "Unpacker",
    "UnpackError",
    "UnpackResult",
]
