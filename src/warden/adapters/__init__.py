"""Backend adapters — one class per external isolation tool."""

from warden.adapters.base import SandboxAdapter
from warden.adapters.bubblewrap import BubblewrapSandbox
from warden.adapters.container import DockerSandbox, PodmanSandbox
from warden.adapters.firejail import FirejailSandbox
from warden.adapters.gvisor import GVisorSandbox
from warden.adapters.macos import MacOSSandbox
from warden.adapters.nsjail import NsjailSandbox

__all__ = [
    "BubblewrapSandbox",
    "DockerSandbox",
    "FirejailSandbox",
    "GVisorSandbox",
    "MacOSSandbox",
    "NsjailSandbox",
    "PodmanSandbox",
    "SandboxAdapter",
]
