"""
Redis controller tests.
"""

import pytest

from core.result import FatalError
from services.cache_service import RedisController


@pytest.fixture
def redis_pid(install_root):
    def _write(content: str = "31337\n"):
        path = install_root / "redis" / "redis_6380.pid"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path
    return _write


@pytest.fixture
def cache(settings, make_node, runner):
    return RedisController(settings, make_node(cache_enabled=True, redis_port=6380), runner)


class TestDisabled:
    def test_every_operation_is_a_no_op(self, settings, make_node, runner, redis_pid, capsys):
        redis_pid()
        controller = RedisController(settings, make_node(cache_enabled=False), runner)

        assert controller.start()
        assert controller.stop()
        assert runner.calls == []
        assert capsys.readouterr().out == ""


class TestExternallyManaged:
    def test_default_port_is_left_alone(self, settings, make_node, runner, redis_pid, capsys):
        redis_pid()
        controller = RedisController(settings, make_node(cache_enabled=True, redis_port=6379), runner)

        controller.start()
        controller.stop()

        out = capsys.readouterr().out
        assert runner.calls == []
        assert "√ Using OS Redis-Server, skipping startup" in out
        assert "√ OS Redis-Server detected, skipping shutdown" in out


class TestStart:
    def test_launches_server_with_config(self, cache, runner, install_root, capsys):
        assert cache.start()

        assert runner.calls == [[str(install_root / "bin" / "redis-server"), str(install_root / "etc" / "redis.conf")]]
        assert "√ Redis-Server started successfully." in capsys.readouterr().out

    def test_failed_launch_is_fatal(self, cache, runner):
        runner.respond([cache.server.as_posix()], (1, ""))

        with pytest.raises(FatalError, match="Failed to start Redis-Server."):
            cache.start()

    def test_pid_file_means_already_running(self, cache, runner, redis_pid, capsys):
        redis_pid()

        assert cache.start()
        assert runner.calls == []
        assert "√ Redis-Server is already running" in capsys.readouterr().out


class TestStop:
    def test_shutdown_without_password(self, cache, runner, redis_pid, install_root, capsys):
        redis_pid()

        assert cache.stop()
        assert runner.calls == [[str(install_root / "bin" / "redis-cli"), "-p", "6380", "shutdown"]]
        assert "√ Redis-Server stopped successfully." in capsys.readouterr().out

    def test_shutdown_with_password(self, settings, make_node, runner, redis_pid):
        redis_pid()
        controller = RedisController(
            settings, make_node(cache_enabled=True, redis_port=6380, redis_password="secret"), runner,
        )

        controller.stop()

        assert runner.calls[0][1:] == ["-p", "6380", "-a", "secret", "shutdown"]

    def test_failed_shutdown_kills_pid_from_marker(self, cache, runner, redis_pid, capsys):
        marker = redis_pid("1000\n31337\n")
        runner.respond([cache.cli.as_posix()], (1, ""))

        assert cache.stop()

        out = capsys.readouterr().out
        assert ["kill", "-9", "31337"] in runner.calls
        assert "X Failed to stop Redis-Server." in out
        assert "√ Redis-Server killed" in out
        assert not marker.exists()

    def test_failed_kill_is_reported(self, cache, runner, redis_pid):
        redis_pid()
        runner.respond([cache.cli.as_posix()], (1, ""))
        runner.respond(["kill"], (1, ""))

        assert not cache.stop()

    def test_no_pid_file_means_already_stopped(self, cache, runner, capsys):
        assert cache.stop()
        assert runner.calls == []
        assert "√ Redis-Server already stopped" in capsys.readouterr().out
