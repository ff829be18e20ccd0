"""Host orchestration services."""

from tm.services.toolchains import InstallRequest, ToolchainService

__all__ = ["InstallRequest", "ToolchainService"]
