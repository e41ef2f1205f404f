"""Process helpers: detaching, version output, address lookup, pid files."""

from __future__ import annotations

import logging
import os
import socket
import sys

log = logging.getLogger(__name__)

EX_SOFTWARE = 70
EX_OSERR = 71
EX_CANTCREAT = 73
EX_IOERR = 74

_STDIN, _STDOUT, _STDERR = 0, 1, 2


def daemonize() -> int:
    """Detach from the terminal and silence standard streams; return the pid.

    Exits the process on failure.
    """
    try:
        os.setsid()
    except PermissionError:
        log.debug("already a process group leader, keeping current session")
    except OSError as exc:
        log.error("setsid() failed: %s", exc)
        sys.exit(EX_OSERR)

    os.umask(0)

    try:
        fd = os.open(os.devnull, os.O_RDWR)
    except OSError as exc:
        log.error('open("%s") failed: %s', os.devnull, exc)
        sys.exit(EX_CANTCREAT)

    try:
        os.dup2(fd, _STDIN)
    except OSError as exc:
        log.error("dup2(%d, STDIN) failed: %s", fd, exc)
        os.close(fd)
        sys.exit(EX_CANTCREAT)

    for target, name in ((_STDOUT, "STDOUT"), (_STDERR, "STDERR")):
        try:
            os.dup2(fd, target)
        except OSError as exc:
            log.error("dup2(%d, %s) failed: %s", fd, name, exc)
            sys.exit(EX_OSERR)

    if fd > _STDERR:
        try:
            os.close(fd)
        except OSError as exc:
            log.error("close(%d) failed: %s", fd, exc)
            sys.exit(EX_SOFTWARE)

    log.info("process daemonized")
    return os.getpid()


def show_version(version: str) -> None:
    """Print the version string to standard output."""
    print(f"Version: {version}")


def getaddr(hostname: str | None, servname: str | None) -> list:
    """Resolve a passive stream address; raises ``socket.gaierror`` on failure."""
    try:
        return socket.getaddrinfo(
            hostname,
            servname,
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
    except socket.gaierror as exc:
        log.error("cannot resolve address: %s", exc)
        raise


def create_pidfile(filename: str) -> None:
    """Write the current pid to ``filename``; exits the process on failure."""
    try:
        fd = os.open(filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    except OSError as exc:
        log.error("open pid file '%s' failed: %s", filename, exc)
        sys.exit(EX_CANTCREAT)

    pid = os.getpid()
    try:
        os.write(fd, str(pid).encode("ascii"))
    except OSError as exc:
        log.error("write to pid file '%s' failed: %s", filename, exc)
        sys.exit(EX_IOERR)

    try:
        os.close(fd)
    except OSError as exc:
        log.warning("close pid file '%s' failed: %s", filename, exc)

    log.info("wrote pid %d to file %s", pid, filename)


def remove_pidfile(filename: str) -> None:
    """Remove the pid file, logging a warning if that fails."""
    try:
        os.unlink(filename)
    except OSError as exc:
        log.warning(
            "unlink/remove of pid file '%s' failed, ignored: %s", filename, exc
        )