"""Error taxonomy and user-facing error display."""

import logging
import shutil
import sys
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from fantastic_probe.config import ProbeConfig

logger = logging.getLogger(__name__)
console = Console()


class ErrorCategory(Enum):
    """Categories of errors for better user experience."""

    CONFIGURATION = "configuration"
    DEPENDENCY = "dependency"
    FILESYSTEM = "filesystem"
    MEDIA = "media"
    EXTERNAL_TOOL = "external_tool"
    MOUNT = "mount"
    NETWORK = "network"
    UPLOAD = "upload"
    SYSTEM = "system"


class FantasticProbeError(Exception):
    """Base exception carrying a category, a remediation hint and recoverability."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        *,
        solution: str | None = None,
        details: str | None = None,
        recoverable: bool = True,
        log_level: int = logging.ERROR,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.solution = solution
        self.details = details
        self.recoverable = recoverable
        self.log_level = log_level
        self.original_error = original_error

    def display_to_user(self) -> None:
        """Display error to user with helpful context."""
        category_styles = {
            ErrorCategory.CONFIGURATION: ("⚙️", "yellow"),
            ErrorCategory.DEPENDENCY: ("📦", "red"),
            ErrorCategory.FILESYSTEM: ("📁", "red"),
            ErrorCategory.MEDIA: ("💿", "blue"),
            ErrorCategory.EXTERNAL_TOOL: ("🔧", "red"),
            ErrorCategory.MOUNT: ("🗄️", "red"),
            ErrorCategory.NETWORK: ("🌐", "orange"),
            ErrorCategory.UPLOAD: ("📤", "orange"),
            ErrorCategory.SYSTEM: ("💻", "red"),
        }

        emoji, color = category_styles.get(self.category, ("❌", "red"))

        console.print(
            f"\n{emoji} [{color}bold]{self.category.value.title()} Error[/{color}bold]",
        )
        console.print(f"[{color}]{self.message}[/{color}]")

        if self.details:
            console.print(f"\n[dim]Details:[/dim] {self.details}")

        if self.solution:
            console.print(f"\n[green]💡 Solution:[/green] {self.solution}")

        if self.recoverable:
            console.print(
                "\n[dim]This error may be temporary. The next scan will retry.[/dim]",
            )
        else:
            console.print(
                "\n[dim]This error requires intervention before continuing.[/dim]",
            )

        if self.original_error:
            logger.log(
                self.log_level,
                "%s: %s",
                self.category.value,
                self.message,
                exc_info=self.original_error,
            )
        else:
            logger.log(self.log_level, "%s: %s", self.category.value, self.message)


class ConfigurationError(FantasticProbeError):
    """Configuration-related errors."""

    def __init__(self, message: str, *, config_path: Path | None = None, **kwargs):
        solution = kwargs.pop("solution", None)
        if not solution and config_path:
            solution = f"Check your configuration file at {config_path}"
        super().__init__(
            message,
            ErrorCategory.CONFIGURATION,
            solution=solution,
            **kwargs,
        )


class DependencyError(FantasticProbeError):
    """Missing or broken external tool. Fatal for the whole scan."""

    def __init__(
        self,
        dependency: str,
        *,
        install_command: str | None = None,
        **kwargs,
    ):
        message = f"Required dependency '{dependency}' is not available"
        solution = kwargs.pop("solution", None)
        if not solution and install_command:
            solution = f"Install with: {install_command}"
        super().__init__(
            message,
            ErrorCategory.DEPENDENCY,
            solution=solution,
            recoverable=False,
            **kwargs,
        )


class InsufficientSpaceError(FantasticProbeError):
    """Not enough free disk space to write descriptors. Fatal for the whole scan."""

    def __init__(self, directory: Path, available_mb: int, required_mb: int, **kwargs):
        super().__init__(
            f"Insufficient disk space in {directory}: {available_mb}MB available, "
            f"{required_mb}MB required",
            ErrorCategory.FILESYSTEM,
            solution="Free up disk space and run the scan again",
            recoverable=False,
            **kwargs,
        )


class MediaError(FantasticProbeError):
    """Placeholder, image or probe data that cannot be turned into a descriptor."""

    def __init__(self, message: str, **kwargs):
        solution = kwargs.pop(
            "solution",
            "Check the placeholder content and that the ISO is readable",
        )
        super().__init__(message, ErrorCategory.MEDIA, solution=solution, **kwargs)


class ToolError(FantasticProbeError):
    """Free-form failure of an external tool (timeout, bad output)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.EXTERNAL_TOOL, **kwargs)


class MountError(FantasticProbeError):
    """Loop mount or unmount failure."""

    def __init__(self, message: str, **kwargs):
        solution = kwargs.pop(
            "solution",
            "Check loop device support and mount permissions (sudo)",
        )
        super().__init__(message, ErrorCategory.MOUNT, solution=solution, **kwargs)


class UploadError(FantasticProbeError):
    """Path mapping or copy failure while uploading an artifact."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.UPLOAD, **kwargs)


def handle_error(
    error: Exception,
    *,
    category: ErrorCategory | None = None,
    **kwargs,
) -> None:
    """Convert generic exceptions to FantasticProbeError and display to user."""
    if isinstance(error, FantasticProbeError):
        error.display_to_user()
        return

    if category is None:
        if isinstance(error, FileNotFoundError | PermissionError):
            category = ErrorCategory.FILESYSTEM
        elif isinstance(error, ConnectionError | TimeoutError):
            category = ErrorCategory.NETWORK
        else:
            category = ErrorCategory.SYSTEM

    probe_error = FantasticProbeError(
        message=str(error) or "An unexpected error occurred",
        category=category,
        original_error=error,
        **kwargs,
    )
    probe_error.display_to_user()


def check_dependencies(config: "ProbeConfig") -> list[DependencyError]:
    """Check for required external tools and return list of errors."""
    errors = []

    if not shutil.which(config.ffprobe_path):
        errors.append(
            DependencyError(
                "ffprobe",
                install_command="apt-get install ffmpeg",
                details="ffprobe is required for media information extraction",
            ),
        )

    return errors


def check_optional_dependencies(config: "ProbeConfig") -> list[str]:
    """Return optional tools that are missing; their stages degrade gracefully."""
    missing = []
    if not shutil.which(config.bd_list_titles_path):
        missing.append(
            "bd_list_titles (Blu-ray language tags, install libbluray-bin)",
        )
    if not shutil.which("mount"):
        missing.append("mount (Blu-ray language tags)")
    return missing


def graceful_exit(exit_code: int = 1) -> None:
    """Exit gracefully with helpful message."""
    if exit_code != 0:
        console.print("\n[red]Fantastic-Probe encountered errors and had to stop[/red]")
        console.print("[dim]Check the logs above for details on what went wrong[/dim]")
        console.print(
            "[dim]Run 'fantastic-probe config validate' to check your configuration[/dim]",
        )

    sys.exit(exit_code)
