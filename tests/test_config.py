"""
Tests for the manifest loader — YAML layout, host merging and paths.
"""

import logging
import textwrap
from pathlib import Path

import pytest

from archman.core.config.loader import (
    ConfigError,
    default_manifest_path,
    load_manifest,
    merge_sections,
)
from archman.core.models import LinkSpec, PackageSpec, ServiceSpec

HOME = Path("/home/u")


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "archman.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestLoadManifest:
    def test_full_manifest(self, tmp_path: Path):
        path = _write(tmp_path, """\
            common:
              packages:
                - git
                - {name: paru-bin, aur: true}
                - {name: nano, state: absent}
              links:
                "~/.vimrc": dotfiles/vimrc
              services:
                - sshd
                - {unit: cups.service, state: absent}
            hosts:
              laptop:
                packages: [tlp]
                services:
                  - {unit: tlp, running: false}
        """)
        manifest = load_manifest(path, hostname="laptop", home=HOME)

        assert manifest.packages == [
            PackageSpec(name="git"),
            PackageSpec(name="paru-bin", aur=True),
            PackageSpec(name="nano", present=False),
            PackageSpec(name="tlp"),
        ]
        assert manifest.links == [
            LinkSpec(path="/home/u/.vimrc", source=str(tmp_path.resolve() / "dotfiles" / "vimrc")),
        ]
        assert manifest.services == [
            ServiceSpec(unit="sshd"),
            ServiceSpec(unit="cups.service", present=False),
            ServiceSpec(unit="tlp", running=False),
        ]

    def test_other_host_section_ignored(self, tmp_path: Path):
        path = _write(tmp_path, """\
            common:
              packages: [git]
            hosts:
              desktop:
                packages: [nvidia]
        """)
        manifest = load_manifest(path, hostname="laptop", home=HOME)
        assert [p.name for p in manifest.packages] == ["git"]

    def test_flat_file_is_common(self, tmp_path: Path):
        path = _write(tmp_path, """\
            packages: [git, vim]
            services: [sshd]
        """)
        manifest = load_manifest(path, hostname="any", home=HOME)
        assert [p.name for p in manifest.packages] == ["git", "vim"]
        assert [s.unit for s in manifest.services] == ["sshd"]

    def test_empty_file(self, tmp_path: Path):
        path = _write(tmp_path, "")
        assert load_manifest(path, hostname="any").total == 0

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Manifest not found"):
            load_manifest(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write(tmp_path, "packages: [git\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_manifest(path, hostname="any")

    def test_not_a_mapping(self, tmp_path: Path):
        path = _write(tmp_path, "- git\n- vim\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_manifest(path, hostname="any")

    def test_unknown_section_key(self, tmp_path: Path):
        path = _write(tmp_path, """\
            common:
              pkgs: [git]
        """)
        with pytest.raises(ConfigError, match="Invalid manifest structure"):
            load_manifest(path, hostname="any")


class TestPackages:
    def _packages(self, node) -> list[str]:
        manifest = merge_sections({"packages": node}, "h", Path("/cfg"), HOME)
        return [p.name for p in manifest.packages]

    def test_nested_groups(self):
        node = [
            "git",
            {"editors": ["vim", {"extras": ["neovim"]}]},
            {"fonts": "noto-fonts"},
        ]
        assert self._packages(node) == ["git", "vim", "neovim", "noto-fonts"]

    def test_group_mapping_at_top(self):
        assert self._packages({"base": ["git"], "dev": ["gcc", "make"]}) == ["git", "gcc", "make"]

    def test_duplicates_keep_first(self, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.WARNING):
            names = self._packages(["git", {"dev": ["git", "gcc"]}])
        assert names == ["git", "gcc"]
        assert "declared more than once" in caplog.text

    def test_bad_state(self):
        with pytest.raises(ConfigError, match="state must be"):
            self._packages([{"name": "git", "state": "installed"}])

    def test_unknown_package_key(self):
        with pytest.raises(ConfigError, match="unknown package keys"):
            self._packages([{"name": "git", "version": "2"}])

    @pytest.mark.parametrize("value, expected", [(True, True), ("false", False), ("no", False), (0, False)])
    def test_aur_flag(self, value, expected):
        manifest = merge_sections(
            {"packages": [{"name": "paru-bin", "aur": value}]}, "h", Path("/cfg"), HOME,
        )
        assert manifest.packages[0].aur is expected

    def test_bad_aur_flag(self):
        with pytest.raises(ConfigError, match=r"packages\[0\]"):
            self._packages([{"name": "paru-bin", "aur": "maybe"}])

    def test_bad_node(self):
        with pytest.raises(ConfigError):
            self._packages([42])


class TestPacmanGroups:
    def test_common_and_host_merged(self, tmp_path: Path):
        path = _write(tmp_path, """\
            common:
              package_groups: [base-devel]
            hosts:
              laptop:
                package_groups: [xfce4, base-devel]
        """)
        manifest = load_manifest(path, hostname="laptop", home=HOME)
        assert manifest.package_groups == ["base-devel", "xfce4"]
        assert manifest.packages == []

    def test_flat_file(self):
        manifest = merge_sections({"package_groups": ["gnome"]}, "h", Path("/cfg"), HOME)
        assert manifest.package_groups == ["gnome"]

    def test_must_be_names(self):
        with pytest.raises(ConfigError, match="Invalid manifest structure"):
            merge_sections({"package_groups": [{"gnome": True}]}, "h", Path("/cfg"), HOME)


class TestLinks:
    def _links(self, raw: dict, hostname: str = "h") -> list[LinkSpec]:
        return merge_sections(raw, hostname, Path("/cfg"), HOME).links

    def test_path_resolution(self):
        links = self._links({"links": {
            "~/.vimrc": "dotfiles/vimrc",
            "/etc/pacman.conf": "/srv/pacman.conf",
            "~/.config/nvim": "~/src/nvim",
        }})
        assert links == [
            LinkSpec(path="/home/u/.vimrc", source="/cfg/dotfiles/vimrc"),
            LinkSpec(path="/etc/pacman.conf", source="/srv/pacman.conf"),
            LinkSpec(path="/home/u/.config/nvim", source="/home/u/src/nvim"),
        ]

    def test_null_source_is_absent(self):
        assert self._links({"links": {"~/.old": None}}) == [LinkSpec(path="/home/u/.old")]

    def test_list_form(self):
        links = self._links({"links": [
            {"path": "~/.vimrc", "source": "dotfiles/vimrc"},
            {"path": "~/.old", "state": "absent"},
        ]})
        assert links == [
            LinkSpec(path="/home/u/.vimrc", source="/cfg/dotfiles/vimrc"),
            LinkSpec(path="/home/u/.old"),
        ]

    def test_list_form_needs_source(self):
        with pytest.raises(ConfigError, match="needs a 'source'"):
            self._links({"links": [{"path": "~/.vimrc"}]})

    def test_list_form_needs_path(self):
        with pytest.raises(ConfigError, match="missing 'path'"):
            self._links({"links": [{"source": "x"}]})

    def test_host_overrides_common(self):
        raw = {
            "common": {"links": {"~/.gitconfig": "git/common", "~/.vimrc": "vim/vimrc"}},
            "hosts": {"work": {"links": {"~/.gitconfig": "git/work"}}},
        }
        links = self._links(raw, hostname="work")
        assert links == [
            LinkSpec(path="/home/u/.gitconfig", source="/cfg/git/work"),
            LinkSpec(path="/home/u/.vimrc", source="/cfg/vim/vimrc"),
        ]


class TestServices:
    def test_missing_unit(self):
        with pytest.raises(ConfigError, match="missing 'unit'"):
            merge_sections({"services": [{"enabled": True}]}, "h", Path("/cfg"), HOME)

    def test_bad_flag(self):
        with pytest.raises(ConfigError):
            merge_sections(
                {"services": [{"unit": "sshd", "enabled": "sometimes"}]}, "h", Path("/cfg"), HOME,
            )


class TestDefaultPath:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("ARCHMAN_MANIFEST", str(tmp_path / "m.yml"))
        assert default_manifest_path() == tmp_path / "m.yml"

    def test_home_default(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert default_manifest_path() == tmp_path / ".config" / "archman" / "archman.yml"
