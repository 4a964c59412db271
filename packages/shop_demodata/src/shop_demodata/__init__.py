from .context import DemodataContext, GeneratedEntity
from .exceptions import DemodataError, ProgressNotStartedError, UnknownGeneratorError
from .generator import DemodataGenerator
from .request import DemodataEntry, DemodataRequest
from .service import DemodataService
from .style import ShopStyle

__all__ = [
    "DemodataContext",
    "DemodataEntry",
    "DemodataError",
    "DemodataGenerator",
    "DemodataRequest",
    "DemodataService",
    "GeneratedEntity",
    "ProgressNotStartedError",
    "ShopStyle",
    "UnknownGeneratorError",
]
