"""Configuration module for ecoplane."""

from ecoplane.config.schema import Config
from ecoplane.config.validator import ConfigValidator

__all__ = ["Config", "ConfigValidator"]
