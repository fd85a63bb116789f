import re
import shlex
from typing import Dict, List, Optional, Set, Tuple

import pytest

from cndeploy.host.ops import HostOps
from cndeploy.utils.execution import ExecutionContext

MiB = 1024 * 1024

DEBIAN_OS_RELEASE = """\
PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
ID_LIKE=debian
"""

ROCKY_OS_RELEASE = """\
NAME="Rocky Linux"
VERSION_ID="9.3"
ID="rocky"
ID_LIKE="rhel centos fedora"
"""


class FakeHost:
    """
    In-memory stand-in for SSHRunner. Understands the handful of shell
    commands HostOps and the steps send, and keeps enough state (files,
    active swaps, mkswap'ed files) for plans to be re-observed.
    """

    def __init__(self, *, user="ubuntu", os_release=DEBIAN_OS_RELEASE, ssh_client="10.0.0.5 51000 22"):
        self.files: Dict[str, str] = {
            "/etc/os-release": os_release,
            "/etc/fstab": "UUID=abcd / ext4 defaults 0 1\n",
            "/etc/hosts": "127.0.0.1 localhost\n",
        }
        self.sizes: Dict[str, int] = {}
        self.modes: Dict[str, int] = {}
        self.binaries: Set[str] = set()
        self.active: Set[str] = set()
        self.formatted: Set[str] = set()
        self.sysctl: Dict[str, str] = {}
        self.hostname = "localhost"
        self.user = user
        self.ssh_client = ssh_client
        self.fail: Dict[str, Tuple[int, str, str]] = {}
        self.calls: List[str] = []
        self.uploads: List[Tuple[str, int]] = []
        self.closed = False

    # ------------------ helpers for tests ------------------

    def add_swapfile(self, path, size_mb, *, formatted=True, active=False, fstab=True):
        self.files[path] = ""
        self.sizes[path] = size_mb * MiB
        self.modes[path] = 0o644
        if formatted:
            self.formatted.add(path)
        if active:
            self.active.add(path)
        if fstab:
            self.files["/etc/fstab"] += f"{path} none swap sw 0 0\n"

    def mutating_calls(self) -> List[str]:
        readonly = ("if [ -e", "if swapon", "if file", "stat -c", "id -un", "echo ", "cat ")
        return [c for c in self.calls if c != "hostname" and not c.startswith(readonly)]

    # ------------------ SSHRunner interface ------------------

    def run(self, cmd: str, *, sudo: bool = False, timeout: Optional[float] = None):
        self.calls.append(cmd)
        for fragment, result in self.fail.items():
            if fragment in cmd:
                return result
        return self._dispatch(cmd)

    def _dispatch(self, cmd: str):
        guarded = re.match(r"^if \[ -e (.+?) \]; then (.*); else echo (\S+); fi$", cmd)
        if guarded:
            path = shlex.split(guarded.group(1))[0]
            if not self._exists(path):
                return 0, guarded.group(3) + "\n", ""
            return self._dispatch(guarded.group(2))

        if cmd.startswith("if swapon --show"):
            path = shlex.split(cmd.split("grep -Fxq ", 1)[1].split(";")[0])[0]
            return 0, ("yes\n" if path in self.active else "no\n"), ""

        if cmd.startswith("if file ") and '"swap file"' in cmd:
            path = shlex.split(cmd[len("if file "):].split("|")[0])[0]
            return 0, ("yes\n" if path in self.formatted else "no\n"), ""

        argv = shlex.split(cmd)
        name = argv[0]

        if name == "true":
            return 0, "", ""
        if name == "stat":
            path = argv[-1]
            if not self._exists(path):
                return 1, "", f"stat: cannot statx '{path}': No such file or directory\n"
            if argv[2] == "%a":
                return 0, oct(self.modes.get(path, 0o644))[2:] + "\n", ""
            return 0, f"{self.sizes.get(path, len(self.files.get(path, '')))}\n", ""
        if name == "cat":
            path = argv[1]
            if path not in self.files:
                return 1, "", f"cat: {path}: No such file or directory\n"
            return 0, self.files[path], ""
        if name == "dd":
            opts = dict(a.split("=", 1) for a in argv[1:])
            path = opts["of"]
            self.files[path] = ""
            self.sizes[path] = int(opts["count"]) * MiB
            self.formatted.discard(path)
            return 0, "", f"{opts['count']}+0 records in\n"
        if name == "chmod":
            self.modes[argv[-1]] = int(argv[1], 8)
            return 0, "", ""
        if name == "mkswap":
            self.formatted.add(argv[1])
            return 0, "Setting up swapspace version 1\n", ""
        if name == "swapoff":
            self.active.discard(argv[1])
            return 0, "", ""
        if name == "swapon" and argv[1:] == ["-a"]:
            for line in self.files.get("/etc/fstab", "").splitlines():
                parts = line.split()
                if len(parts) >= 3 and parts[2] == "swap" and parts[0] in self.formatted:
                    self.active.add(parts[0])
            return 0, "", ""
        if name == "rm":
            path = argv[-1]
            self.files.pop(path, None)
            self.sizes.pop(path, None)
            self.formatted.discard(path)
            return 0, "", ""
        if name == "sysctl" and argv[1] == "-w":
            key, _, value = argv[2].partition("=")
            self.sysctl[key] = value
            return 0, f"{key} = {value}\n", ""
        if name == "hostname":
            return 0, self.hostname + "\n", ""
        if name == "hostnamectl":
            self.hostname = argv[-1]
            return 0, "", ""
        if name == "id":
            return 0, self.user + "\n", ""
        if name == "echo" and argv[1] == "$SSH_CLIENT":
            return 0, self.ssh_client + "\n", ""
        if name == "curl":
            dest = argv[argv.index("-o") + 1]
            self.files[dest] = "#!/bin/bash\nHOSTNAME=example.org\nUFWMODE=no\n"
            self.modes[dest] = 0o700
            return 0, "", ""
        # ufw, firewall-cmd, systemctl, sshd -t ...
        return 0, "", ""

    def put_text(self, content, remote_path, *, mode=0o644, owner="root:root", sudo=True):
        self.calls.append(f"put {remote_path}")
        self.uploads.append((remote_path, mode))
        self.files[remote_path] = content
        self.modes[remote_path] = mode
        return 0, "", ""

    def close(self):
        self.closed = True

    def _exists(self, path):
        return path in self.files or path in self.binaries


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def ops(fake_host):
    return HostOps(fake_host, hostname="relay-1", ctx=ExecutionContext())


OS_RELEASES = {"debian": DEBIAN_OS_RELEASE, "rocky": ROCKY_OS_RELEASE}


@pytest.fixture
def make_host():
    def _make(*, os="debian", **kwargs):
        return FakeHost(os_release=OS_RELEASES[os], **kwargs)
    return _make
