"""Exception classes for the installation engine"""

from typing import Optional


class PluginError(Exception):
    """Base exception for all plugin management errors

    Attributes:
        phase: Installer state the error was raised in (set by the installer)
        hint: Optional actionable hint for the user
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint
        self.phase: Optional[str] = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.phase:
            return f"[{self.phase}] {message}"
        return message


class ManifestError(PluginError):
    """Raised when a plugin manifest cannot be read"""
    pass


class UnsafePluginNameError(PluginError):
    """Raised when a plugin name could escape the install layout"""
    pass


class SelectorError(PluginError):
    """Raised when a platform selector is malformed"""
    pass


class NoMatchingPlatformError(PluginError):
    """Raised when no platform of a plugin matches the target os/arch"""
    pass


class NoVersionResolvableError(PluginError):
    """Raised when HEAD is forced but the platform declares no head"""
    pass


class DownloadError(PluginError):
    """Base class for fetch, verification and extraction failures"""
    pass


class FetchError(DownloadError):
    """Raised when the artifact bytes cannot be fetched"""
    pass


class VerificationError(DownloadError):
    """Raised when fetched bytes fail integrity verification"""
    pass


class UnsupportedArchiveTypeError(DownloadError):
    """Raised when no extractor handles the sniffed content type"""
    pass


class ExtractionError(DownloadError):
    """Raised when archive extraction fails"""
    pass


class ExtractionPathEscapeError(ExtractionError):
    """Raised when an archive entry resolves outside the destination"""
    pass


class OperationCancelledError(PluginError):
    """Raised when an operation observes its cancel event"""
    pass


class InstallationError(PluginError):
    """Raised when placing files into the install layout fails"""
    pass


class GlobNoMatchError(InstallationError):
    """Raised when a file operation glob matches no archive files"""
    pass


class MoveError(InstallationError):
    """Raised when a file operation cannot be planned or applied"""
    pass


class MovePathEscapeError(MoveError):
    """Raised when a planned move leaves its source or target directory"""
    pass


class NotASymlinkError(InstallationError):
    """Raised when a bin entry that should be a symlink is a regular file"""
    pass


class NotInstalledError(InstallationError):
    """Raised when uninstalling or upgrading a plugin that is not installed"""
    pass


class InstallLockedError(InstallationError):
    """Raised when another process holds the plugin's install lock"""
    pass


class ReceiptNotFoundError(PluginError):
    """Raised when a receipt file does not exist"""
    pass
