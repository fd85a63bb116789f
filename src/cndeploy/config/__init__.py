from .loader import load_config, validate_tweaks
from .models import DeployConfig, HostSpec, OsTweaksConfig

__all__ = ["load_config", "validate_tweaks", "DeployConfig", "HostSpec", "OsTweaksConfig"]
