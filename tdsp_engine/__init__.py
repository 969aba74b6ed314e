"""Texas TDSP Resolution Engine: ZIP code (and optional address) -> transmission/distribution utility."""

from .engine import ResolutionEngine
from .models import MunicipalUtility, NotFound, ResolutionResult

__all__ = ["ResolutionEngine", "ResolutionResult", "MunicipalUtility", "NotFound"]
