"""Virtual disk mounting with safe subprocess handling.

Differencing disks are mounted with the Windows storage primitive
(``Mount-DiskImage -NoDriveLetter``) driven through PowerShell. The disk is
exposed through the folder recorded as the clone's access path, so no drive
letter is ever assigned.

Security:
    Paths and host names are never interpolated into the PowerShell script.
    They are handed over through environment variables of the child process,
    and the command itself is an argument list (no shell).

Idempotence:
    Mounting an image that is already attached is reported by the OS as an
    error. Those messages are recognised and raised as AlreadyMountedError,
    which ``mount()`` swallows. Every other failure is raised as MountError.

Functions:
    - run_command(): Run a command, logging its output
    - is_local_host(): Whether a host name refers to this machine
    - build_mount_command(): PowerShell argument list for a mount
    - mount_disk_image(): Mount, raising AlreadyMountedError when attached
    - mount(): Idempotent mount used by the repair engine

Example:
    >>> mounter = DiskMounter()
    >>> mounter.mount(r"\\\\fs01\\clones\\db1_clone.vhdx")
"""

from __future__ import annotations

import os
import socket
import subprocess
from typing import Optional

from dbclone_repair.config.settings import DEFAULT_MOUNT_SHELL
from dbclone_repair.logging import LoggerFactory

from .exceptions import AlreadyMountedError, MountError


log = LoggerFactory.for_mount()

IMAGE_PATH_ENV = "DBCLONE_IMAGE_PATH"
TARGET_HOST_ENV = "DBCLONE_TARGET_HOST"

LOCAL_MOUNT_SCRIPT = (
    f"Mount-DiskImage -ImagePath $env:{IMAGE_PATH_ENV} -NoDriveLetter "
    "-ErrorAction Stop | Out-Null"
)
REMOTE_MOUNT_SCRIPT = (
    f"Invoke-Command -ComputerName $env:{TARGET_HOST_ENV} -ErrorAction Stop "
    "-ScriptBlock { param($p) Mount-DiskImage -ImagePath $p -NoDriveLetter "
    "-ErrorAction Stop | Out-Null } "
    f"-ArgumentList $env:{IMAGE_PATH_ENV}"
)

# Lower-cased fragments of OS messages for an image that is already attached
ALREADY_MOUNTED_MARKERS = (
    "already attached",
    "already mounted",
    "virtual disk is already",
)

_LOCAL_ALIASES = {"", ".", "localhost", "127.0.0.1", "::1"}


def run_command(command, env=None, check=False):
    log.debug(f"Running command: {' '.join(command[:4])} ...")
    result = subprocess.run(
        command, check=check, text=True, capture_output=True, env=env
    )
    if result.stdout:
        log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr:
        log.trace(f"stderr: {result.stderr.strip()}")
    log.debug(f"Command completed with return code {result.returncode}")
    return result


def is_local_host(host_name: Optional[str]) -> bool:
    if host_name is None:
        return True
    name = host_name.strip().lower()
    if name in _LOCAL_ALIASES:
        return True
    local = socket.gethostname().lower()
    return name == local or name.split(".")[0] == local.split(".")[0]


def _validate_image_path(clone_location: str) -> None:
    if not isinstance(clone_location, str) or not clone_location.strip():
        raise ValueError(f"Invalid image path: {clone_location!r}")
    if any(char in clone_location for char in ["\n", "\r", "\x00"]):
        raise ValueError(f"Image path contains invalid characters: {clone_location!r}")


def build_mount_command(
    clone_location: str,
    host_name: Optional[str] = None,
    shell: str = DEFAULT_MOUNT_SHELL,
) -> tuple[list[str], dict[str, str]]:
    """Build the PowerShell argument list and environment for a mount.

    Returns:
        (command, extra environment variables)
    """
    _validate_image_path(clone_location)
    env = {IMAGE_PATH_ENV: clone_location}
    if is_local_host(host_name):
        script = LOCAL_MOUNT_SCRIPT
    else:
        script = REMOTE_MOUNT_SCRIPT
        env[TARGET_HOST_ENV] = host_name
    command = [shell, "-NoProfile", "-NonInteractive", "-Command", script]
    return command, env


def is_already_mounted_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in ALREADY_MOUNTED_MARKERS)


def mount_disk_image(
    clone_location: str,
    host_name: Optional[str] = None,
    shell: str = DEFAULT_MOUNT_SHELL,
) -> None:
    """Mount a virtual disk without assigning a drive letter.

    Args:
        clone_location: Path to the differencing disk file
        host_name: Host that should mount the disk (None for this machine)
        shell: PowerShell executable

    Raises:
        AlreadyMountedError: If the disk is already attached
        MountError: If the mount failed for any other reason
    """
    try:
        command, extra_env = build_mount_command(clone_location, host_name, shell)
    except ValueError as error:
        raise MountError(str(clone_location), str(error)) from error

    env = dict(os.environ)
    env.update(extra_env)
    try:
        result = run_command(command, env=env)
    except OSError as error:
        raise MountError(clone_location, f"{shell} could not be started: {error}") from error

    if result.returncode == 0:
        return

    message = (result.stderr or "").strip() or (result.stdout or "").strip()
    if is_already_mounted_message(message):
        raise AlreadyMountedError(clone_location)
    raise MountError(clone_location, message or f"exit code {result.returncode}")


class DiskMounter:
    """Idempotent mount adapter used by the repair engine."""

    def __init__(self, shell: str = DEFAULT_MOUNT_SHELL):
        self.shell = shell

    def mount(self, clone_location: str, host_name: Optional[str] = None) -> bool:
        """Mount a clone's differencing disk.

        Returns:
            True if the disk was mounted now, False if it was already mounted

        Raises:
            MountError: For any failure other than already-mounted
        """
        try:
            mount_disk_image(clone_location, host_name, shell=self.shell)
        except AlreadyMountedError:
            log.debug(f"Disk already mounted: {clone_location}")
            return False
        log.info(f"Mounted {clone_location}")
        return True
