"""Unit tests for the OS-family driver installers."""

import pytest

from gpu_provisioner.adapters.outbound.mock_host import MockPackageManager
from gpu_provisioner.domain.entities.platform import OSFamily
from gpu_provisioner.domain.exceptions import InstallationError, RetryExhaustedError
from gpu_provisioner.domain.services.installers import (
    DebianInstaller,
    RockyInstaller,
    UbuntuInstaller,
    get_installer,
)
from gpu_provisioner.domain.services.installers.debian import CUDA_KEYRING_URL, enable_contrib
from gpu_provisioner.domain.services.installers.ubuntu import PIN_FILE
from gpu_provisioner.domain.services.kernel_maintenance import KernelMaintenance

DEBIAN_SOURCES = """Types: deb deb-src
URIs: https://deb.debian.org/debian
Suites: bookworm bookworm-updates
Components: main
Signed-By: /usr/share/keyrings/debian-archive-keyring.gpg

Types: deb deb-src
URIs: https://deb.debian.org/debian-security
Suites: bookworm-security
Components: main
Signed-By: /usr/share/keyrings/debian-archive-keyring.gpg
"""


@pytest.fixture
def build(make_context, runner, fetcher, supervisor, executor, node_paths):
    """Build an installer plus its package manager for a platform."""
    runner.script(["uname", "-r"], stdout="5.10.0-26-cloud-amd64\n")

    def factory(family=OSFamily.DEBIAN, release="11", **overrides):
        context = make_context(family=family, release=release, **overrides)
        packages = MockPackageManager("apt" if context.platform.uses_apt else "dnf")
        kernel = KernelMaintenance(context.platform, runner, packages, supervisor, executor, node_paths)
        installer = get_installer(context, runner, packages, fetcher, executor, kernel, node_paths)
        return installer, packages

    return factory


@pytest.mark.unit
class TestGetInstaller:
    """Test installer selection."""

    @pytest.mark.parametrize("family, release, expected", [
        (OSFamily.DEBIAN, "12", DebianInstaller),
        (OSFamily.UBUNTU, "22.04", UbuntuInstaller),
        (OSFamily.ROCKY, "9.3", RockyInstaller),
    ])
    def test_by_family(self, build, family, release, expected):
        installer, _ = build(family, release)
        assert isinstance(installer, expected)
        assert installer.family is family


@pytest.mark.unit
class TestDebianInstaller:
    """Test the runfile-based Debian flow."""

    def test_install(self, build, runner, fetcher, supervisor, node_paths):
        installer, packages = build()

        installer.install()

        assert packages.installed[0] == "linux-headers-5.10.0-26-cloud-amd64"
        assert packages.repositories == ["contrib"]
        assert packages.operations[:4] == ["install", "add_repository", "update_index", "install_local"]
        assert packages.local_files == [node_paths.work_dir / "cuda-keyring.deb"]
        assert fetcher.urls == [
            CUDA_KEYRING_URL,
            installer.context.driver_url,
            installer.context.toolkit_url,
        ]
        driver = str(node_paths.work_dir / "driver.run")
        toolkit = str(node_paths.work_dir / "cuda.run")
        assert ("bash", driver, "--silent", "--install-libglvnd") in runner.commands
        assert ("bash", toolkit, "--silent", "--toolkit", "--no-opengl-libs") in runner.commands
        assert runner.commands[-1] == ("ldconfig",)
        assert "install-headers.service" in supervisor.units

    def test_debian_10_replaces_libglvnd(self, build):
        installer, packages = build(release="10")

        installer.install_driver()

        assert packages.removed == ["libglvnd0"]
        assert "ca-certificates-java" in packages.installed

    def test_package_steps_retry(self, build, sleeps):
        installer, packages = build(release="10")
        packages.failures.update({"libglvnd0": 1, "contrib": 1, "cuda-keyring.deb": 1})

        installer.install_driver()

        assert packages.removed == ["libglvnd0"]
        assert packages.repositories == ["contrib"]
        assert [path.name for path in packages.local_files] == ["cuda-keyring.deb"]
        assert sleeps == [5, 5, 5]

    def test_debian_12_enables_contrib(self, build, node_paths):
        node_paths.debian_sources.parent.mkdir(parents=True)
        node_paths.debian_sources.write_text(DEBIAN_SOURCES)
        installer, packages = build(release="12")

        installer.install_driver()

        text = node_paths.debian_sources.read_text()
        assert text.count("Components: main contrib") == 1
        assert packages.removed == []

    def test_runfile_failure(self, build, runner):
        installer, _ = build()
        runner.fail(["bash"], stderr="ERROR: Unable to load the kernel module")

        with pytest.raises(InstallationError, match="runfile failed"):
            installer.install_driver()

    def test_download_exhausted(self, build, fetcher):
        fetcher.failures[CUDA_KEYRING_URL] = 10
        installer, _ = build()

        with pytest.raises(RetryExhaustedError, match="cuda-keyring"):
            installer.install_driver()

    def test_enable_contrib_once(self):
        once = enable_contrib(DEBIAN_SOURCES)
        assert enable_contrib(once) == once
        assert once.count("contrib") == 1


@pytest.mark.unit
class TestUbuntuInstaller:
    """Test the local-repository Ubuntu flow."""

    def seed_keyring(self, node_paths, release="ubuntu2204", dashed="12-2"):
        repo = node_paths.cuda_repo_root / f"cuda-repo-{release}-{dashed}-local"
        repo.mkdir(parents=True)
        (repo / "cuda-A1B2C3D4-keyring.gpg").write_bytes(b"key")

    def test_install(self, build, node_paths, fetcher):
        self.seed_keyring(node_paths)
        installer, packages = build(OSFamily.UBUNTU, "22.04")

        installer.install()

        assert installer.local_installer == (
            "cuda-repo-ubuntu2204-12-2-local_12.2.2-535.104.05-1_amd64.deb"
        )
        assert (node_paths.apt_preferences_dir / PIN_FILE).exists()
        assert (node_paths.keyring_dir / "cuda-A1B2C3D4-keyring.gpg").read_bytes() == b"key"
        assert fetcher.urls[0].endswith("/cuda/repos/ubuntu2204/x86_64/cuda-ubuntu2204.pin")
        assert packages.no_recommends == ["cuda-drivers-535", "cuda-toolkit-12-2"]

    def test_local_installer_exhausted(self, build):
        installer, packages = build(OSFamily.UBUNTU, "22.04")
        packages.failures["local-installer.deb"] = 3

        with pytest.raises(RetryExhaustedError, match="cuda-repo-ubuntu2204-12-2-local"):
            installer.install_driver()
        assert packages.local_files == []

    def test_missing_keyring(self, build):
        installer, _ = build(OSFamily.UBUNTU, "20.04")

        with pytest.raises(InstallationError, match="keyring"):
            installer.install_driver()


@pytest.mark.unit
class TestRockyInstaller:
    """Test the dnf module-stream Rocky flow."""

    def test_install(self, build, runner, supervisor):
        installer, packages = build(OSFamily.ROCKY, "8.8")

        installer.install()

        assert packages.repositories == [
            "https://developer.download.nvidia.com/compute/cuda/repos/rhel8/x86_64/cuda-rhel8.repo"
        ]
        assert packages.operations == ["add_repository", "clean", "module_install", "install"]
        assert packages.modules == ["nvidia-driver:535"]
        assert packages.installed == ["cuda-toolkit-12-2"]
        assert ("modprobe", "nvidia") in runner.commands
        assert supervisor.units == {}

    def test_modprobe_failure(self, build, runner):
        installer, _ = build(OSFamily.ROCKY, "9.3")
        runner.fail(["modprobe"])

        with pytest.raises(InstallationError, match="nvidia kernel module"):
            installer.install_toolkit()
