from .settings import CONVERSION_DEFAULTS, ConversionSettings

__all__ = ["ConversionSettings", "CONVERSION_DEFAULTS"]
