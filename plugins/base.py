"""Base plugin class for the kernel."""

from abc import ABC
from typing import Any


class Plugin(ABC):
    """Base class for the pipeline stages registered in the kernel."""

    def __init__(self) -> None:
        self._kernel: Any | None = None

    @property
    def kernel(self) -> Any:
        if self._kernel is None:
            raise RuntimeError(
                f"Plugin '{self.__class__.__name__}' used before kernel registration."
            )
        return self._kernel

    @kernel.setter
    def kernel(self, kernel_instance: Any) -> None:
        self._kernel = kernel_instance

    @property
    def http(self) -> Any:
        """Shared HTTP client owned by the kernel."""
        if not hasattr(self.kernel, "http"):
            raise RuntimeError("Kernel does not expose an 'http' client.")
        return self.kernel.http

    def setup(self) -> None:
        """Called once after every plugin is registered (create dirs, etc.)."""
        pass
