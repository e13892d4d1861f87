"""
darp - container development environments with stable local URLs
Each project directory under a registered domain gets a port and an http://{project}.{domain}.test URL
"""

__version__ = "0.1.0"

from .config import Config, Domain, Environment, Service, Volume
from .deploy import DeployReport, Reconciler, deploy
from .engine import Engine, EngineKind, RunRequest
from .errors import DarpError
from .paths import DarpPaths
from .ports import PortAllocator, PortStore
from .resolver import EffectiveSettings, Overrides, ResolutionContext, resolve
from .scanner import scan

__all__ = [
    "Config",
    "Domain",
    "Environment",
    "Service",
    "Volume",
    "DarpPaths",
    "DarpError",
    "DeployReport",
    "Reconciler",
    "deploy",
    "Engine",
    "EngineKind",
    "RunRequest",
    "PortAllocator",
    "PortStore",
    "EffectiveSettings",
    "Overrides",
    "ResolutionContext",
    "resolve",
    "scan",
    "__version__",
]
