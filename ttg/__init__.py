"""
TTG Dual-Token Governance Package

Core imports are lazily loaded so that importing a submodule does not pull
in the whole protocol. For direct module access, import from submodules:

    from ttg.bootstrap import deploy_protocol
    from ttg.governance import DualGovernor, ListMutation
    from ttg.exceptions import InsufficientFee
"""

# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'deploy_protocol':
        from .bootstrap import deploy_protocol
        return deploy_protocol
    elif name == 'Ledger':
        from .ledger import Ledger
        return Ledger
    elif name == 'load_config':
        from .config import load_config
        return load_config
    elif name == 'TTGException':
        from .exceptions import TTGException
        return TTGException
    raise AttributeError(f"module 'ttg' has no attribute {name!r}")

__all__ = ['deploy_protocol', 'Ledger', 'load_config', 'TTGException']
