from .backends import (
    FirewallBackend,
    FirewalldBackend,
    IptablesBackend,
    UfwBackend,
    configure_firewall,
    select_backend,
)

__all__ = [
    "FirewallBackend",
    "FirewalldBackend",
    "IptablesBackend",
    "UfwBackend",
    "configure_firewall",
    "select_backend",
]
