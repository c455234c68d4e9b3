from userbackend.config.properties import (
    ConfigurationProperties,
    format_config_sources,
    get_config,
    log_config_sources,
    reload_config,
)

__all__ = [
    "ConfigurationProperties",
    "format_config_sources",
    "get_config",
    "reload_config",
    "log_config_sources",
]
