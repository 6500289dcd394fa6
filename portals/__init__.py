"""Portal adapter factory and exports."""

import logging
from typing import Any, Dict

from portals.base import PortalAdapter

logger = logging.getLogger(__name__)


def get_adapter(config: Dict[str, Any]) -> PortalAdapter:
    """
    Factory function to get appropriate portal adapter.

    Args:
        config: Configuration dictionary from config.json

    Returns:
        Portal adapter instance

    Raises:
        ValueError: If portal is not supported

    Example:
        >>> adapter = get_adapter({"source": {"portal": "shiawasehome"}})
        >>> print(adapter.get_portal_name())
        "shiawasehome"
    """
    portal = config.get("source", {}).get("portal", "shiawasehome").lower()

    if portal == "shiawasehome":
        from portals.shiawasehome.adapter import ShiawasehomeAdapter

        logger.info("Initializing shiawasehome adapter")
        return ShiawasehomeAdapter(config)

    raise ValueError(
        f"Unsupported portal: {portal}. Supported portals: 'shiawasehome'"
    )


__all__ = ["get_adapter", "PortalAdapter"]
