# src/swarmsync/utils/ssh_runner.py

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Callable, Dict, Optional

import paramiko

from swarmsync.errors import RemoteCommandError, RemoteUnreachableError

log = logging.getLogger("swarmsync")


class SSHRunner:
    """
    Command channel bound to one open SSH connection.
    """

    def __init__(self, client: paramiko.SSHClient, target: str = "remote"):
        self.client = client
        self.target = target

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
        display: Optional[str] = None,
    ) -> tuple[int, str, str]:
        # display replaces cmd in logs when cmd carries a secret
        if sudo:
            cmd = f"sudo -H -E bash -c '{cmd}'"

        log.debug("[ssh] (%s) $ %s", self.target, display or cmd)
        stdin, stdout, stderr = self.client.exec_command(cmd, timeout=timeout)
        out = stdout.read().decode("utf-8", "replace")
        err = stderr.read().decode("utf-8", "replace")
        rc = stdout.channel.recv_exit_status()
        if rc != 0:
            log.debug("[ssh] (%s) [exit %s] %s", self.target, rc, err.strip())
        return rc, out, err

    def put_file(self, local_path: str | Path, remote_path: str, *, sudo: bool = False) -> None:
        if sudo:
            tmp = f"/tmp/.swarmsync.upload.{os.getpid()}"
            self.put_file(local_path, tmp)
            self.run(f"mv {tmp} {remote_path}", sudo=True)
            return

        sftp = self.client.open_sftp()
        try:
            sftp.put(str(local_path), str(remote_path))
        finally:
            sftp.close()

    def close(self) -> None:
        self.client.close()


def load_private_key(key_file: str | Path) -> Optional[paramiko.PKey]:
    """Load ``key_file`` as whichever key type parses; ``None`` if it is missing."""
    path = Path(key_file).expanduser()
    if not path.is_file():
        return None

    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(str(path))
        except paramiko.SSHException:
            continue
    log.warning("SSH key %s could not be loaded, falling back to agent keys", path)
    return None


def split_user_host(user_host: str) -> tuple[Optional[str], str]:
    user, sep, host = user_host.rpartition("@")
    if not sep:
        return None, user_host
    return user or None, host


def open_ssh(
    user_host: str,
    *,
    key_file: str | Path | None = None,
    connect_timeout: float = 5.0,
    port: int = 22,
) -> SSHRunner:
    user, host = split_user_host(user_host)

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = load_private_key(key_file) if key_file else None

    client.connect(
        hostname=host,
        port=port,
        username=user,
        pkey=pkey,
        timeout=connect_timeout,
        banner_timeout=connect_timeout,
        auth_timeout=connect_timeout,
        allow_agent=True,
        look_for_keys=pkey is None,
    )

    return SSHRunner(client, target=user_host)


class RemoteExecutor:
    """
    Runs commands on machines addressed as ``user@host``.

    Connections are opened lazily and reused for the lifetime of the
    executor. A machine that cannot be reached raises
    ``RemoteUnreachableError``; a command that runs and fails does not raise,
    its exit code is returned to the caller.
    """

    def __init__(
        self,
        *,
        key_file: str | Path | None = None,
        connect_timeout: float = 5.0,
        command_timeout: Optional[float] = 120.0,
        connect: Callable[..., SSHRunner] = open_ssh,
    ):
        self.key_file = key_file
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._connect = connect
        self._channels: Dict[str, SSHRunner] = {}

    def channel(self, user_host: str) -> SSHRunner:
        runner = self._channels.get(user_host)
        if runner is not None:
            return runner

        try:
            runner = self._connect(
                user_host,
                key_file=self.key_file,
                connect_timeout=self.connect_timeout,
            )
        except (paramiko.SSHException, OSError, EOFError) as exc:
            raise RemoteUnreachableError(user_host, str(exc) or exc.__class__.__name__) from exc

        self._channels[user_host] = runner
        return runner

    def run(
        self,
        user_host: str,
        command: str,
        *,
        display: Optional[str] = None,
    ) -> tuple[int, str, str]:
        runner = self.channel(user_host)
        try:
            return runner.run(command, timeout=self.command_timeout, display=display)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            # drop the broken connection so the next call reconnects
            self._channels.pop(user_host, None)
            runner.close()
            raise RemoteUnreachableError(user_host, str(exc) or exc.__class__.__name__) from exc

    def execute_remote(
        self,
        user_host: str,
        command: str,
        *,
        display: Optional[str] = None,
    ) -> tuple[str, int]:
        rc, out, err = self.run(user_host, command, display=display)
        output = out if rc == 0 else (out + err)
        return output.strip(), rc

    def bind(self, user_host: str) -> "RemoteChannel":
        return RemoteChannel(self, user_host)

    def test_connectivity(self, user_host: str) -> bool:
        try:
            _, rc = self.execute_remote(user_host, "exit")
        except RemoteUnreachableError as exc:
            log.debug("connectivity check failed for %s: %s", user_host, exc.reason)
            return False
        return rc == 0

    def copy_file(self, user_host: str, local_path: str | Path, remote_path: str) -> None:
        self.channel(user_host).put_file(local_path, remote_path)
        log.debug("[ssh] (%s) copied %s -> %s", user_host, local_path, remote_path)

    def create_directory(self, user_host: str, path: str, mode: str = "755") -> None:
        command = f"mkdir -p {shlex.quote(path)} && chmod {mode} {shlex.quote(path)}"
        output, rc = self.execute_remote(user_host, command)
        if rc != 0:
            raise RemoteCommandError(user_host, command, rc, output)

    def close(self) -> None:
        for runner in self._channels.values():
            runner.close()
        self._channels.clear()

    def __enter__(self) -> "RemoteExecutor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class RemoteChannel:
    """``RemoteExecutor`` pinned to one machine, usable wherever an ``SSHRunner`` is."""

    def __init__(self, executor: RemoteExecutor, user_host: str):
        self.executor = executor
        self.target = user_host

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
        display: Optional[str] = None,
    ) -> tuple[int, str, str]:
        if sudo:
            cmd = f"sudo -H -E bash -c '{cmd}'"
        return self.executor.run(self.target, cmd, display=display)
