"""Platform abstraction layer."""

from .detection import (
    Arch,
    HostEnvironment,
    Os,
    UnsupportedHostError,
    detect_host,
)
from .env import expand_all, expand_env
from .files import atomic_write_bytes, atomic_write_json, make_executable
from .paths import home

__all__ = [
    # detection
    "Arch",
    "HostEnvironment",
    "Os",
    "UnsupportedHostError",
    "detect_host",
    # env
    "expand_all",
    "expand_env",
    # files
    "atomic_write_bytes",
    "atomic_write_json",
    "make_executable",
    # paths
    "home",
]
