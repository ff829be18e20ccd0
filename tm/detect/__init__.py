"""Version file detection."""

from tm.detect.detector import DetectedVersion, DirectoryWalk, VersionDetector, default_version_file

__all__ = ["DetectedVersion", "DirectoryWalk", "VersionDetector", "default_version_file"]
