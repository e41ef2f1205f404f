import errno
import logging
import os
import socket
from unittest import mock

import pytest

from kvcache import util


def test_show_version(capsys):
    util.show_version("1.2.3")
    assert capsys.readouterr().out == "Version: 1.2.3\n"


def test_getaddr_numeric_host():
    infos = util.getaddr("127.0.0.1", "8080")
    assert infos
    for family, socktype, _proto, _name, sockaddr in infos:
        assert family == socket.AF_INET
        assert socktype == socket.SOCK_STREAM
        assert sockaddr == ("127.0.0.1", 8080)


def test_getaddr_passive_without_host():
    infos = util.getaddr(None, "9999")
    assert infos
    assert all(info[4][1] == 9999 for info in infos)


def test_getaddr_failure_raises():
    with pytest.raises(socket.gaierror):
        util.getaddr(None, None)


def test_create_and_remove_pidfile(tmp_path):
    path = tmp_path / "cache.pid"
    util.create_pidfile(str(path))
    assert path.read_text() == str(os.getpid())
    util.remove_pidfile(str(path))
    assert not path.exists()


def test_create_pidfile_truncates(tmp_path):
    path = tmp_path / "cache.pid"
    path.write_text("x" * 64)
    util.create_pidfile(str(path))
    assert path.read_text() == str(os.getpid())


def test_create_pidfile_unwritable_exits(tmp_path):
    path = tmp_path / "missing-dir" / "cache.pid"
    with pytest.raises(SystemExit) as info:
        util.create_pidfile(str(path))
    assert info.value.code == util.EX_CANTCREAT


def test_remove_missing_pidfile_warns(tmp_path, caplog):
    caplog.set_level(logging.WARNING)
    util.remove_pidfile(str(tmp_path / "absent.pid"))
    assert any("ignored" in r.getMessage() for r in caplog.records)


def test_daemonize_setsid_failure_exits():
    with mock.patch("os.setsid", side_effect=OSError(errno.EINVAL, "no session")):
        with pytest.raises(SystemExit) as info:
            util.daemonize()
    assert info.value.code == util.EX_OSERR


def test_daemonize_redirects_standard_streams():
    with mock.patch("os.setsid", return_value=None), mock.patch(
        "os.umask"
    ) as umask, mock.patch("os.open", return_value=7), mock.patch(
        "os.dup2"
    ) as dup2, mock.patch("os.close") as close, mock.patch(
        "os.getpid", return_value=4321
    ):
        pid = util.daemonize()
    assert pid == 4321
    umask.assert_called_once_with(0)
    assert [c.args for c in dup2.call_args_list] == [(7, 0), (7, 1), (7, 2)]
    close.assert_called_once_with(7)


def test_daemonize_group_leader_continues():
    with mock.patch(
        "os.setsid", side_effect=PermissionError(errno.EPERM, "leader")
    ), mock.patch("os.umask"), mock.patch("os.open", return_value=9), mock.patch(
        "os.dup2"
    ) as dup2, mock.patch("os.close"), mock.patch("os.getpid", return_value=99):
        pid = util.daemonize()
    assert pid == 99
    assert len(dup2.call_args_list) == 3


def test_daemonize_devnull_failure_exits():
    with mock.patch("os.setsid", return_value=None), mock.patch(
        "os.umask"
    ), mock.patch("os.open", side_effect=OSError("denied")):
        with pytest.raises(SystemExit) as info:
            util.daemonize()
    assert info.value.code == util.EX_CANTCREAT


def test_daemonize_stdin_dup_failure_closes_and_exits():
    with mock.patch("os.setsid", return_value=None), mock.patch(
        "os.umask"
    ), mock.patch("os.open", return_value=7), mock.patch(
        "os.dup2", side_effect=OSError("bad fd")
    ), mock.patch("os.close") as close:
        with pytest.raises(SystemExit) as info:
            util.daemonize()
    assert info.value.code == util.EX_CANTCREAT
    close.assert_called_once_with(7)


def test_daemonize_stdout_dup_failure_exits():
    with mock.patch("os.setsid", return_value=None), mock.patch(
        "os.umask"
    ), mock.patch("os.open", return_value=7), mock.patch(
        "os.dup2", side_effect=[None, OSError("bad fd")]
    ), mock.patch("os.close"):
        with pytest.raises(SystemExit) as info:
            util.daemonize()
    assert info.value.code == util.EX_OSERR