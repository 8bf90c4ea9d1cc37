"""
Tests for backends — mocks, registry dispatch and the shell backends.
"""

import subprocess
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from archman.adapters.base import UnitStatus
from archman.adapters.mock import MockFileBackend, MockPackageBackend, MockServiceBackend
from archman.adapters.packages.pacman import AurHelperBackend, PacmanBackend, _parse_names
from archman.adapters.registry import BackendRegistry
from archman.adapters.services.systemd import SystemctlBackend
from archman.adapters.shell.command import run_command
from archman.adapters.shell.filesystem import SymlinkBackend
from archman.core.errors import BackendError, ErrorKind, LinkConflictError, ObservationError
from archman.core.models import Action, ActionType, ResourceId

GIT = ResourceId.package("git")
YAY = ResourceId.package("yay")
SSHD = ResourceId.service_unit("sshd")


def _completed(args, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


# ── Mock backends ────────────────────────────────────────────────────


class TestMockBackends:
    def test_package_install_remove(self):
        backend = MockPackageBackend()
        backend.install("git")
        assert backend.list_installed() == {"git"}
        backend.remove("git")
        assert backend.list_installed() == set()

    def test_remove_missing_fails(self):
        with pytest.raises(BackendError):
            MockPackageBackend().remove("git")

    def test_injected_failure(self):
        backend = MockPackageBackend()
        backend.set_failure("install", "git", "nope")
        with pytest.raises(BackendError, match="nope"):
            backend.install("git")
        assert "git" not in backend.installed

    def test_query_failure_is_observation_error(self):
        backend = MockServiceBackend()
        backend.set_failure("query", "sshd")
        with pytest.raises(ObservationError):
            backend.query("sshd")

    def test_mutations_exclude_queries(self):
        backend = MockFileBackend()
        backend.resolve_link("/a")
        backend.create_link("/a", "/b")
        assert backend.call_count == 2
        assert backend.mutations == [("create_link", "/a")]

    def test_file_conflict(self):
        backend = MockFileBackend(files={"/a"})
        with pytest.raises(LinkConflictError):
            backend.create_link("/a", "/b")

    def test_service_transitions(self):
        backend = MockServiceBackend()
        assert backend.query("sshd") == UnitStatus(False, False)
        backend.enable("sshd")
        backend.start("sshd")
        assert backend.query("sshd") == UnitStatus(True, True)
        backend.stop("sshd")
        assert backend.query("sshd") == UnitStatus(True, False)

    def test_static_unit_ignores_enable(self):
        backend = MockServiceBackend({"systemd-timesyncd": (None, False, True)})
        backend.enable("systemd-timesyncd")
        backend.start("systemd-timesyncd")
        assert backend.query("systemd-timesyncd") == UnitStatus(None, True, static=True)

    def test_reset(self):
        backend = MockPackageBackend()
        backend.set_failure("install", "git")
        backend.reset()
        backend.install("git")
        assert backend.call_log == [("install", "git")]


# ── Registry ─────────────────────────────────────────────────────────


class TestRegistry:
    def test_list_installed_aur_wins(self, registry, packages, aur):
        packages.installed = {"git", "yay"}
        aur.installed = {"yay"}
        view = registry.list_installed()
        assert view.complete
        assert view.owners == {"git": "pacman", "yay": "paru"}

    def test_list_installed_partial(self, registry, packages, aur):
        packages.installed = {"git"}
        aur.set_failure("list_installed", "*", "locked")
        view = registry.list_installed()
        assert "git" in view
        assert not view.complete
        assert view.failed == {"paru": "locked"}

    def test_install_routes_by_aur_flag(self, registry, packages, aur):
        registry.apply(Action.install(GIT))
        registry.apply(Action.install(YAY, aur=True))
        assert packages.installed == {"git"}
        assert aur.installed == {"yay"}

    def test_install_aur_without_helper(self, packages, files, services):
        registry = BackendRegistry(packages=packages, files=files, services=services)
        result = registry.apply(Action.install(YAY, aur=True))
        assert result.failed
        assert "No AUR helper" in result.error

    def test_remove_routes_to_owner(self, registry, packages, aur):
        aur.installed = {"yay"}
        registry.list_installed()
        result = registry.apply(Action.remove(YAY))
        assert result.ok
        assert aur.mutations == [("remove", "yay")]
        assert packages.mutations == []

    def test_service_dispatch(self, registry, services):
        for action_type in (
            ActionType.ENABLE_SERVICE,
            ActionType.START_SERVICE,
            ActionType.STOP_SERVICE,
            ActionType.DISABLE_SERVICE,
        ):
            assert registry.apply(Action.for_service(action_type, SSHD)).ok
        assert [op for op, _ in services.mutations] == ["enable", "start", "stop", "disable"]

    def test_link_dispatch(self, registry, files):
        link = ResourceId.linked_file("/home/u/.vimrc")
        assert registry.apply(Action.create_link(link, "/repo/vimrc")).ok
        assert files.links == {"/home/u/.vimrc": "/repo/vimrc"}
        assert registry.apply(Action.remove_link(link)).ok
        assert files.links == {}

    def test_link_conflict_checked_before_create(self, registry, files):
        files.files = {"/home/u/.vimrc"}
        result = registry.apply(
            Action.create_link(ResourceId.linked_file("/home/u/.vimrc"), "/repo/vimrc"),
        )
        assert result.error_kind == ErrorKind.LINK_CONFLICT
        assert ("create_link", "/home/u/.vimrc") not in files.call_log

    def test_apply_never_raises(self, registry, packages):
        with patch.object(packages, "install", side_effect=RuntimeError("kaboom")):
            result = registry.apply(Action.install(GIT))
        assert result.failed
        assert "Unexpected error: kaboom" == result.error

    def test_apply_times_the_call(self, registry, packages):
        with patch.object(packages, "install", side_effect=lambda name: time.sleep(0.02)):
            result = registry.apply(Action.install(GIT))
        assert result.ok
        assert result.started_at < result.ended_at
        assert result.duration_ms >= 20

    def test_group_queries_use_system_backend(self, registry, packages, aur):
        packages.groups = {"base-devel": ["make", "gcc"]}
        packages.installed = {"make", "gcc", "zlib"}
        packages.dependencies = {"zlib"}
        assert registry.group_members("base-devel") == ["make", "gcc"]
        assert registry.install_reasons().explicit == {"make", "gcc"}
        assert aur.call_count == 0

    def test_backend_status(self, registry):
        status = registry.backend_status()
        assert set(status) == {"pacman", "paru", "mock-files", "mock-services"}
        assert status["pacman"]["available"] is True


# ── Shell command ────────────────────────────────────────────────────


class TestRunCommand:
    @patch("archman.adapters.shell.command.subprocess.run")
    def test_success(self, mock_run):
        mock_run.return_value = _completed(["true"], stdout="ok\n")
        result = run_command(["true"])
        assert result.ok
        assert result.stdout == "ok"

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_nonzero_raises(self, mock_run):
        mock_run.return_value = _completed(["pacman"], returncode=1, stderr="error: target not found: nope")
        with pytest.raises(BackendError, match="target not found"):
            run_command(["pacman", "-S", "nope"])

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_nonzero_without_check(self, mock_run):
        mock_run.return_value = _completed(["systemctl"], returncode=3, stdout="inactive")
        result = run_command(["systemctl", "is-active", "sshd"], check=False)
        assert result.return_code == 3

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["pacman"], 1)
        with pytest.raises(BackendError, match="timed out"):
            run_command(["pacman", "-Syu"], timeout=1)

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("no pacman")
        with pytest.raises(BackendError, match="Cannot run pacman"):
            run_command(["pacman", "-Qq"])


# ── Package backends ─────────────────────────────────────────────────


class TestPacmanBackend:
    def test_parse_names(self):
        assert _parse_names("git\nvim\n\nzsh\n") == {"git", "vim", "zsh"}

    def test_parse_garbage(self):
        with pytest.raises(ObservationError):
            _parse_names("git 2.44.0-1\n")

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_list_installed(self, mock_run):
        mock_run.return_value = _completed([], stdout="git\nvim\n")
        assert PacmanBackend(use_sudo=False).list_installed() == {"git", "vim"}
        assert mock_run.call_args[0][0] == ["pacman", "-Qq"]

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_list_failure_is_observation_error(self, mock_run):
        mock_run.return_value = _completed([], returncode=1, stderr="database locked")
        with pytest.raises(ObservationError):
            PacmanBackend(use_sudo=False).list_installed()

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_empty_filter_is_not_a_failure(self, mock_run):
        mock_run.return_value = _completed([], returncode=1)
        assert AurHelperBackend("paru").list_installed() == set()

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_group_members(self, mock_run):
        mock_run.return_value = _completed([], stdout="autoconf\nautomake\nmake\n")
        members = PacmanBackend(use_sudo=False).group_members("base-devel")
        assert members == ["autoconf", "automake", "make"]
        assert mock_run.call_args[0][0] == ["pacman", "-Sgq", "base-devel"]

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_unknown_group(self, mock_run):
        mock_run.return_value = _completed([], returncode=1, stderr="error: target not found: nope")
        with pytest.raises(ObservationError, match="target not found"):
            PacmanBackend(use_sudo=False).group_members("nope")

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_install_reasons(self, mock_run):
        outputs = {
            "-Qeq": _completed([], stdout="git\nvim\n"),
            "-Qdq": _completed([], stdout="zlib\nlibfoo\n"),
            "-Qdtq": _completed([], stdout="libfoo\n"),
        }
        mock_run.side_effect = lambda args, **kwargs: outputs[args[1]]
        reasons = PacmanBackend(use_sudo=False).install_reasons()
        assert reasons.explicit == {"git", "vim"}
        assert reasons.dependencies == {"zlib", "libfoo"}
        assert reasons.unneeded == {"libfoo"}

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_no_unneeded_packages(self, mock_run):
        def fake(args, **kwargs):
            if args[1] == "-Qdtq":
                return _completed(args, returncode=1)
            return _completed(args, stdout="git\n")
        mock_run.side_effect = fake
        assert PacmanBackend(use_sudo=False).install_reasons().unneeded == set()

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_install_uses_sudo(self, mock_run):
        mock_run.return_value = _completed([])
        PacmanBackend(use_sudo=True).install("git")
        assert mock_run.call_args[0][0] == ["sudo", "pacman", "-S", "--needed", "--noconfirm", "git"]

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_remove(self, mock_run):
        mock_run.return_value = _completed([])
        PacmanBackend(use_sudo=False).remove("git")
        assert mock_run.call_args[0][0] == ["pacman", "-Rns", "--noconfirm", "git"]

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_aur_helper_lists_foreign_without_sudo(self, mock_run):
        mock_run.return_value = _completed([], stdout="paru-bin\n")
        backend = AurHelperBackend("yay")
        assert backend.name == "yay"
        assert backend.list_installed() == {"paru-bin"}
        assert mock_run.call_args[0][0] == ["yay", "-Qqm"]
        backend.install("spotify")
        assert mock_run.call_args[0][0] == ["yay", "-S", "--needed", "--noconfirm", "spotify"]

    @patch("archman.adapters.packages.pacman.tool_available")
    def test_detect(self, mock_available):
        mock_available.side_effect = lambda tool: tool == "yay"
        backend = AurHelperBackend.detect()
        assert backend is not None and backend.name == "yay"
        mock_available.side_effect = lambda tool: False
        assert AurHelperBackend.detect() is None


# ── Systemd backend ──────────────────────────────────────────────────


class TestSystemctlBackend:
    @patch("archman.adapters.shell.command.subprocess.run")
    def test_query(self, mock_run):
        def fake(args, **kwargs):
            if "is-enabled" in args:
                return _completed(args, returncode=1, stdout="disabled\n")
            return _completed(args, stdout="active\n")
        mock_run.side_effect = fake
        assert SystemctlBackend(use_sudo=False).query("sshd") == UnitStatus(False, True)

    @pytest.mark.parametrize("state", ["static", "indirect", "alias", "generated", "transient"])
    @patch("archman.adapters.shell.command.subprocess.run")
    def test_query_static(self, mock_run, state):
        def fake(args, **kwargs):
            if "is-enabled" in args:
                return _completed(args, stdout=f"{state}\n")
            return _completed(args, returncode=3, stdout="inactive\n")
        mock_run.side_effect = fake
        status = SystemctlBackend(use_sudo=False).query("systemd-timesyncd")
        assert status == UnitStatus(None, False, static=True)

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_query_unrecognized(self, mock_run):
        mock_run.return_value = _completed([], returncode=1, stdout="", stderr="Failed to connect to bus")
        assert SystemctlBackend(use_sudo=False).query("sshd") == UnitStatus(None, None)

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_query_cannot_run(self, mock_run):
        mock_run.side_effect = FileNotFoundError("systemctl")
        assert SystemctlBackend(use_sudo=False).query("sshd") == UnitStatus(None, None)

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_enable_privileged(self, mock_run):
        mock_run.return_value = _completed([])
        SystemctlBackend(use_sudo=True).enable("sshd")
        assert mock_run.call_args[0][0] == ["sudo", "systemctl", "enable", "sshd"]

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_user_scope(self, mock_run):
        mock_run.return_value = _completed([])
        SystemctlBackend(user=True).start("syncthing")
        assert mock_run.call_args[0][0] == ["systemctl", "--user", "start", "syncthing"]

    @patch("archman.adapters.shell.command.subprocess.run")
    def test_stop_failure(self, mock_run):
        mock_run.return_value = _completed([], returncode=5, stderr="Unit foo.service not loaded.")
        with pytest.raises(BackendError, match="not loaded"):
            SystemctlBackend(use_sudo=False).stop("foo")


# ── Filesystem backend ───────────────────────────────────────────────


class TestSymlinkBackend:
    def test_create_and_resolve(self, tmp_path: Path):
        source = tmp_path / "vimrc"
        source.write_text("")
        target = tmp_path / "home" / ".vimrc"
        backend = SymlinkBackend()

        assert backend.resolve_link(str(target)) is None
        assert not backend.exists(str(target))
        backend.create_link(str(target), str(source))
        assert backend.resolve_link(str(target)) == str(source)

    def test_replaces_existing_symlink(self, tmp_path: Path):
        target = tmp_path / ".vimrc"
        target.symlink_to(tmp_path / "old")
        SymlinkBackend().create_link(str(target), str(tmp_path / "new"))
        assert SymlinkBackend().resolve_link(str(target)) == str(tmp_path / "new")
        assert [p.name for p in tmp_path.iterdir()] == [".vimrc"]

    def test_failed_replace_keeps_old_link(self, tmp_path: Path):
        target = tmp_path / ".vimrc"
        target.symlink_to(tmp_path / "old")
        with patch("archman.adapters.shell.filesystem.os.replace", side_effect=OSError("EXDEV")):
            with pytest.raises(BackendError, match="EXDEV"):
                SymlinkBackend().create_link(str(target), str(tmp_path / "new"))
        assert SymlinkBackend().resolve_link(str(target)) == str(tmp_path / "old")
        assert [p.name for p in tmp_path.iterdir()] == [".vimrc"]

    def test_regular_file_conflict(self, tmp_path: Path):
        target = tmp_path / ".vimrc"
        target.write_text("precious")
        backend = SymlinkBackend()
        assert backend.resolve_link(str(target)) is None
        assert backend.exists(str(target))
        with pytest.raises(LinkConflictError):
            backend.create_link(str(target), str(tmp_path / "vimrc"))
        assert target.read_text() == "precious"

    def test_dangling_link_resolves(self, tmp_path: Path):
        target = tmp_path / ".vimrc"
        target.symlink_to(tmp_path / "gone")
        assert SymlinkBackend().resolve_link(str(target)) == str(tmp_path / "gone")

    def test_remove_link(self, tmp_path: Path):
        target = tmp_path / ".vimrc"
        target.symlink_to(tmp_path / "vimrc")
        SymlinkBackend().remove_link(str(target))
        assert not target.is_symlink()

    def test_refuses_to_remove_file(self, tmp_path: Path):
        target = tmp_path / ".vimrc"
        target.write_text("precious")
        with pytest.raises(BackendError):
            SymlinkBackend().remove_link(str(target))
        assert target.exists()
