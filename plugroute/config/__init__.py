from .schema import RouterConfig
from .loader import ConfigError, load_config
from .validator import ConfigValidator

__all__ = ["RouterConfig", "ConfigError", "load_config", "ConfigValidator"]
