from .config import ShopSettings, shop_settings
from .logging import SHOP_NAMESPACES, get_logger, scoped_run_id, setup_logging

__all__ = [
    "SHOP_NAMESPACES",
    "ShopSettings",
    "get_logger",
    "scoped_run_id",
    "setup_logging",
    "shop_settings",
]
