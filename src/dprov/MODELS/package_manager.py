"""
Models describing the OS package managers a recipe can drive.
"""
from typing import Dict, List, Optional, Set
from pydantic import BaseModel

class PackageManager(BaseModel):
    """
    Commands and recipe vocabulary for one package manager.

    Commands are argv lists, joined with ``&&`` into a single shell
    script when a step runs.
    """
    name: str
    family: str

    upgrade_commands: List[List[str]]
    refresh_commands: List[List[str]] = []
    install_command: List[str]
    query_command: List[str]
    list_command: List[str]
    environment: Dict[str, str] = {}

    # Recipe vocabulary
    executables: List[str]
    upgrade_verbs: List[str]
    refresh_verbs: List[str] = []
    install_verbs: List[str]
    valued_options: Set[str] = set()

    def install_commands(self, packages: List[str], refreshed: bool) -> List[List[str]]:
        """
        Commands installing ``packages`` in listing order.

        :param packages: Package names, in recipe order.
        :param refreshed: Whether repository metadata is already fresh (an upgrade ran).
        """
        commands = [] if refreshed else [list(c) for c in self.refresh_commands]
        commands.append(self.install_command + list(packages))
        return commands

    def package_name(self, package: str) -> str:
        """Strips a version qualifier (``pkg=1.2``) from a package argument."""
        return package.split("=", 1)[0]


_RPM_QUERY = ["rpm", "-q", "--whatprovides"]
_RPM_LIST = ["rpm", "-qa", "--queryformat", "%{NAME}\n"]
_DNF_OPTIONS = {"--repo", "--enablerepo", "--disablerepo", "--releasever", "--setopt", "-x", "--exclude"}

PACKAGE_MANAGERS: Dict[str, PackageManager] = {
    "dnf": PackageManager(
        name="dnf",
        family="rpm",
        upgrade_commands=[["dnf", "-y", "upgrade"]],
        install_command=["dnf", "-y", "install"],
        query_command=_RPM_QUERY,
        list_command=_RPM_LIST,
        executables=["dnf"],
        upgrade_verbs=["upgrade", "update", "distro-sync"],
        install_verbs=["install"],
        valued_options=_DNF_OPTIONS,
    ),
    "yum": PackageManager(
        name="yum",
        family="rpm",
        upgrade_commands=[["yum", "-y", "update"]],
        install_command=["yum", "-y", "install"],
        query_command=_RPM_QUERY,
        list_command=_RPM_LIST,
        executables=["yum"],
        upgrade_verbs=["update", "upgrade"],
        install_verbs=["install"],
        valued_options=_DNF_OPTIONS,
    ),
    "microdnf": PackageManager(
        name="microdnf",
        family="rpm",
        upgrade_commands=[["microdnf", "-y", "upgrade"]],
        install_command=["microdnf", "-y", "install"],
        query_command=_RPM_QUERY,
        list_command=_RPM_LIST,
        executables=["microdnf"],
        upgrade_verbs=["upgrade", "update"],
        install_verbs=["install"],
        valued_options=_DNF_OPTIONS,
    ),
    "apt-get": PackageManager(
        name="apt-get",
        family="deb",
        upgrade_commands=[["apt-get", "update"], ["apt-get", "-y", "upgrade"]],
        refresh_commands=[["apt-get", "update"]],
        install_command=["apt-get", "-y", "install"],
        query_command=["dpkg", "-s"],
        list_command=["dpkg-query", "-W", "-f=${Package}\n"],
        environment={"DEBIAN_FRONTEND": "noninteractive"},
        executables=["apt-get", "apt"],
        upgrade_verbs=["upgrade", "dist-upgrade", "full-upgrade"],
        refresh_verbs=["update"],
        install_verbs=["install"],
        valued_options={"-o", "-t", "--target-release", "-c"},
    ),
    "apk": PackageManager(
        name="apk",
        family="apk",
        upgrade_commands=[["apk", "update"], ["apk", "upgrade"]],
        refresh_commands=[["apk", "update"]],
        install_command=["apk", "add"],
        query_command=["apk", "info", "-e"],
        list_command=["apk", "info"],
        executables=["apk"],
        upgrade_verbs=["upgrade"],
        refresh_verbs=["update"],
        install_verbs=["add"],
        valued_options={"-X", "--repository", "-t", "--virtual"},
    ),
    "zypper": PackageManager(
        name="zypper",
        family="rpm",
        upgrade_commands=[["zypper", "--non-interactive", "update"]],
        refresh_commands=[["zypper", "--non-interactive", "refresh"]],
        install_command=["zypper", "--non-interactive", "install"],
        query_command=_RPM_QUERY,
        list_command=_RPM_LIST,
        executables=["zypper"],
        upgrade_verbs=["update", "up", "dist-upgrade", "dup"],
        refresh_verbs=["refresh", "ref"],
        install_verbs=["install", "in"],
        valued_options={"-r", "--repo"},
    ),
}

# Base image repository name -> package manager
_IMAGE_FAMILIES = {
    "fedora": "dnf",
    "centos": "dnf",
    "rockylinux": "dnf",
    "almalinux": "dnf",
    "rhel": "dnf",
    "oraclelinux": "dnf",
    "amazonlinux": "dnf",
    "debian": "apt-get",
    "ubuntu": "apt-get",
    "alpine": "apk",
    "opensuse": "zypper",
    "sles": "zypper",
}

# Releases that predate dnf
_YUM_RELEASES = {"centos": ("6", "7"), "amazonlinux": ("1", "2")}


def get_package_manager(name: str) -> PackageManager:
    """
    Looks up a package manager by name or recipe executable.

    :raises KeyError: If the name is unknown.
    """
    if name in PACKAGE_MANAGERS:
        return PACKAGE_MANAGERS[name]
    for manager in PACKAGE_MANAGERS.values():
        if name in manager.executables:
            return manager
    raise KeyError(name)


def infer_package_manager(repository: str, tag: Optional[str]) -> Optional[str]:
    """
    Guesses the package manager from a base image repository and tag.

    :param repository: Repository path, e.g. ``library/fedora`` or ``opensuse/leap``.
    :param tag: Image tag, if any.
    :return: Package manager name, or None when the image is not recognised.
    """
    parts = [p for p in repository.split("/") if p != "library"]
    if not parts:
        return None
    name = parts[-1]

    # ubi8/ubi-minimal, ubi9-minimal, ...
    if name.startswith("ubi"):
        return "microdnf" if "minimal" in name else "dnf"

    for candidate in (name, parts[0]):
        family = _IMAGE_FAMILIES.get(candidate)
        if family:
            releases = _YUM_RELEASES.get(candidate)
            if releases and tag and tag.split(".")[0] in releases:
                return "yum"
            return family
    return None
