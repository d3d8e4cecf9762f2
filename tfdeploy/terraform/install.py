"""Terraform install module.

This module handles:
- URL discovery for official Terraform release archives
- Download with SHA256SUMS verification
- Extraction of the terraform binary into the cache directory
- Reuse of a cached install and locking against concurrent installs

The Terraform version is pinned; there is no fallback to another release.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
import platform
import stat
import subprocess
import tempfile
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from tfdeploy.config import get_settings
from tfdeploy.errors import TERRAFORM_INSTALL_ERROR, DeployError

if TYPE_CHECKING:
    from tfdeploy.config import Settings

logger = logging.getLogger(__name__)

# Pinned Terraform release
TERRAFORM_VERSION = "1.6.0"

# Official HashiCorp release server base URL
HASHICORP_RELEASES_BASE = "https://releases.hashicorp.com"

# Timeout for checksum requests (seconds)
CHECKSUM_TIMEOUT = 30

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# platform.machine() values mapped to HashiCorp architecture names
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
}


class TerraformInstallError(DeployError):
    """Base error for Terraform installation failures."""

    def __init__(self, message: str, code: str = TERRAFORM_INSTALL_ERROR) -> None:
        super().__init__(message, code=code)


class DownloadError(TerraformInstallError):
    """Raised when the Terraform download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        super().__init__(message, code=code)


class VerificationError(TerraformInstallError):
    """Raised when checksum or version verification fails."""

    def __init__(self, message: str, code: str = "verification_error") -> None:
        super().__init__(message, code=code)


class ExtractionError(TerraformInstallError):
    """Raised when the release archive cannot be extracted."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message, code=code)


class OfflineModeError(TerraformInstallError):
    """Raised when a download is required but offline mode is enabled."""

    def __init__(
        self,
        message: str = "Cannot download Terraform in offline mode",
        code: str = "offline_mode",
    ) -> None:
        super().__init__(message, code=code)


@dataclass
class TerraformURLs:
    """URLs for a Terraform release archive and its checksums."""

    archive_url: str
    sha256sums_url: str

    @property
    def archive_filename(self) -> str:
        return self.archive_url.rsplit("/", 1)[-1]


def detect_platform(
    system: str | None = None,
    machine: str | None = None,
) -> tuple[str, str]:
    """Return the (os, arch) pair used in HashiCorp release names.

    Args:
        system: Override for platform.system().
        machine: Override for platform.machine().

    Returns:
        Tuple such as ('linux', 'amd64').

    Raises:
        TerraformInstallError: If the architecture is not recognised.
    """
    os_name = (system or platform.system()).lower()
    raw_arch = (machine or platform.machine()).lower()
    arch = _ARCH_ALIASES.get(raw_arch)
    if arch is None:
        raise TerraformInstallError(
            f"Unsupported architecture for Terraform: {raw_arch}",
            code="unsupported_platform",
        )
    return os_name, arch


def terraform_binary_name(os_name: str) -> str:
    """Return the terraform executable filename for an OS."""
    return "terraform.exe" if os_name == "windows" else "terraform"


def build_terraform_urls(
    version: str,
    os_name: str,
    arch: str,
    base_url: str = HASHICORP_RELEASES_BASE,
) -> TerraformURLs:
    """Build URLs for a Terraform release archive and checksums.

    Args:
        version: Terraform version (e.g., '1.6.0').
        os_name: Target OS (e.g., 'linux').
        arch: Target architecture (e.g., 'amd64').
        base_url: Base URL for HashiCorp releases.

    Returns:
        TerraformURLs with archive and checksum URLs.
    """
    prefix = f"{base_url.rstrip('/')}/terraform/{version}"
    return TerraformURLs(
        archive_url=f"{prefix}/terraform_{version}_{os_name}_{arch}.zip",
        sha256sums_url=f"{prefix}/terraform_{version}_SHA256SUMS",
    )


def parse_sha256sums(content: str) -> dict[str, str]:
    """Map archive filenames to SHA256 checksums from a SHA256SUMS file."""
    sums: dict[str, str] = {}
    for line in content.splitlines():
        fields = line.split()
        if len(fields) == 2:
            checksum, filename = fields
            sums[filename.lstrip("*")] = checksum.lower()
    return sums


def _download_error(action: str, exc: httpx.HTTPError) -> DownloadError:
    if isinstance(exc, httpx.HTTPStatusError):
        return DownloadError(
            f"{action} failed with HTTP {exc.response.status_code}",
            code="http_error",
        )
    if isinstance(exc, httpx.TimeoutException):
        return DownloadError(f"{action} timed out", code="timeout")
    return DownloadError(f"{action} failed: {exc}", code="network_error")


def download_archive(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    expected_checksum: str,
    timeout: float = 600,
) -> None:
    """Stream url into dest_path and check it against expected_checksum.

    The partial or mismatching file is removed before an error is raised.

    Raises:
        DownloadError: If the request fails.
        VerificationError: If the SHA256 of the payload does not match.
    """
    logger.info("Downloading %s", url)
    digest = hashlib.sha256()

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
                    digest.update(chunk)
    except httpx.HTTPError as e:
        dest_path.unlink(missing_ok=True)
        raise _download_error(f"Downloading {url}", e) from e

    actual = digest.hexdigest()
    if actual != expected_checksum.lower():
        dest_path.unlink(missing_ok=True)
        raise VerificationError(
            f"Checksum mismatch for {dest_path.name}: "
            f"expected {expected_checksum}, got {actual}",
            code="checksum_mismatch",
        )


def extract_binary(archive_path: Path, dest_dir: Path, binary_name: str) -> Path:
    """Extract the terraform binary from a release zip.

    Args:
        archive_path: Path to the zip archive.
        dest_dir: Directory to place the binary in.
        binary_name: Name of the executable inside the archive.

    Returns:
        Path to the extracted, executable binary.

    Raises:
        ExtractionError: If the archive is invalid or lacks the binary.
    """
    logger.debug("Extracting %s from %s", binary_name, archive_path.name)

    dest_dir.mkdir(parents=True, exist_ok=True)
    dest_path = dest_dir / binary_name

    try:
        with zipfile.ZipFile(archive_path) as archive:
            if binary_name not in archive.namelist():
                raise ExtractionError(
                    f"{binary_name} not found in {archive_path.name}",
                    code="binary_missing",
                )
            with archive.open(binary_name) as src, dest_path.open("wb") as dst:
                while chunk := src.read(DOWNLOAD_CHUNK_SIZE):
                    dst.write(chunk)
    except zipfile.BadZipFile as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="bad_archive",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    mode = dest_path.stat().st_mode
    dest_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return dest_path


def verify_terraform_binary(exec_path: Path, version: str) -> None:
    """Check that a terraform binary runs and reports the expected version.

    Raises:
        VerificationError: If the binary fails to run or reports another version.
    """
    try:
        result = subprocess.run(
            [str(exec_path), "version", "-json"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise VerificationError(
            f"Failed to run {exec_path}: {e}",
            code="version_check_failed",
        ) from e

    if result.returncode != 0:
        raise VerificationError(
            f"{exec_path} version exited with status {result.returncode}: "
            f"{result.stderr.strip()}",
            code="version_check_failed",
        )

    try:
        reported = json.loads(result.stdout)["terraform_version"]
    except (ValueError, KeyError, TypeError) as e:
        raise VerificationError(
            f"Unexpected output from {exec_path} version -json",
            code="version_check_failed",
        ) from e

    if reported != version:
        raise VerificationError(
            f"Terraform at {exec_path} is version {reported}, expected {version}",
            code="version_mismatch",
        )


@contextmanager
def install_lock(cache_dir: Path, version: str) -> Iterator[None]:
    """Hold an exclusive file lock while installing a Terraform version.

    Args:
        cache_dir: Root cache directory.
        version: Terraform version being installed.

    Yields:
        None when lock is acquired.
    """
    lock_dir = cache_dir / ".locks"
    lock_dir.mkdir(parents=True, exist_ok=True)
    lock_file = lock_dir / f"terraform_{version}.lock"

    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        logger.debug("Lock acquired for Terraform %s", version)
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
        logger.debug("Lock released for Terraform %s", version)


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def download_terraform(
    client: httpx.Client,
    version: str,
    os_name: str,
    arch: str,
    install_dir: Path,
    base_url: str = HASHICORP_RELEASES_BASE,
    timeout: float = 600,
) -> Path:
    """Download, verify and extract a Terraform release.

    Returns:
        Path to the installed terraform binary.

    Raises:
        DownloadError: If download fails.
        VerificationError: If the checksum is missing or does not match.
        ExtractionError: If extraction fails.
    """
    urls = build_terraform_urls(version, os_name, arch, base_url)

    logger.debug("Fetching checksums from %s", urls.sha256sums_url)
    try:
        response = client.get(urls.sha256sums_url, timeout=CHECKSUM_TIMEOUT)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise _download_error(f"Fetching {urls.sha256sums_url}", e) from e

    expected_checksum = parse_sha256sums(response.text).get(urls.archive_filename)
    if expected_checksum is None:
        raise VerificationError(
            f"No checksum for {urls.archive_filename} in SHA256SUMS",
            code="checksum_missing",
        )

    install_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        dir=install_dir, suffix=".zip.tmp", delete=False
    ) as tmp_file:
        tmp_path = Path(tmp_file.name)

    try:
        download_archive(
            client, urls.archive_url, tmp_path, expected_checksum, timeout=timeout
        )
        return extract_binary(tmp_path, install_dir, terraform_binary_name(os_name))
    finally:
        tmp_path.unlink(missing_ok=True)


def ensure_terraform(
    settings: Settings | None = None,
    client: httpx.Client | None = None,
    version: str = TERRAFORM_VERSION,
) -> Path:
    """Ensure the pinned Terraform release is installed.

    Reuses a cached binary when present, otherwise downloads it under a lock.

    Args:
        settings: Application settings (uses defaults if not provided).
        client: HTTPX client (creates one if not provided).
        version: Terraform version to install.

    Returns:
        Path to the terraform executable.

    Raises:
        OfflineModeError: If download required but offline mode enabled.
        TerraformInstallError: If download, verification or extraction fails.
    """
    if settings is None:
        settings = get_settings()

    os_name, arch = detect_platform()
    cache_dir = settings.cache_dir.resolve()
    install_dir = cache_dir / version / f"{os_name}_{arch}"
    exec_path = install_dir / terraform_binary_name(os_name)

    if _is_executable(exec_path):
        logger.info("Using cached Terraform %s at %s", version, exec_path)
        return exec_path

    if settings.offline:
        raise OfflineModeError(
            f"Cannot download Terraform {version} in offline mode"
        )

    logger.info("installing Terraform %s...", version)

    with install_lock(cache_dir, version):
        # Another process may have installed it while we waited
        if _is_executable(exec_path):
            logger.info("Terraform %s became available while waiting", version)
            return exec_path

        manage_client = client is None
        http_client = httpx.Client(follow_redirects=True) if client is None else client
        try:
            exec_path = download_terraform(
                http_client,
                version,
                os_name,
                arch,
                install_dir,
                base_url=settings.releases_url,
                timeout=settings.download_timeout,
            )
        finally:
            if manage_client:
                http_client.close()

        try:
            verify_terraform_binary(exec_path, version)
        except VerificationError:
            exec_path.unlink(missing_ok=True)
            raise

    logger.info("Terraform %s installed at %s", version, exec_path)
    return exec_path


__all__ = [
    "HASHICORP_RELEASES_BASE",
    "TERRAFORM_VERSION",
    "DownloadError",
    "ExtractionError",
    "OfflineModeError",
    "TerraformInstallError",
    "TerraformURLs",
    "VerificationError",
    "build_terraform_urls",
    "detect_platform",
    "download_archive",
    "download_terraform",
    "ensure_terraform",
    "extract_binary",
    "install_lock",
    "parse_sha256sums",
    "terraform_binary_name",
    "verify_terraform_binary",
]
