from .os_tweaks import HostRunResult, OsTweaksBootstrapper

__all__ = ["HostRunResult", "OsTweaksBootstrapper"]
