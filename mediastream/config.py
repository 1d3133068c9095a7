"""
Application settings entry point.

Re-exports the settings held by the configuration manager together with the
HTTP-level constants shared by the routers.
"""

from mediastream.core.config import config_manager

settings = config_manager.settings

# Only single byte ranges are served
RANGE_UNIT = "bytes"
