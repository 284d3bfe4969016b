"""
Gateway factory for creating ledger gateways.
"""
import importlib
import logging
from typing import Dict, Type
from config import Config
from .base_gateway import LedgerGateway
from .paper_gateway import PaperGateway

logger = logging.getLogger(__name__)


class GatewayFactory:
    """
    Factory class for creating ledger gateways.

    Gateways are looked up by registered name, or loaded from an import
    path of the form "package.module:ClassName" so a chain-specific
    implementation can live outside this project.
    """

    # Registry of available gateways
    _gateways: Dict[str, Type[LedgerGateway]] = {
        'paper': PaperGateway,
    }

    @classmethod
    def create_gateway(cls, gateway_name: str, config: Config) -> LedgerGateway:
        """
        Create a ledger gateway instance.

        Args:
            gateway_name: Registered name or "package.module:ClassName"
            config: Configuration object

        Returns:
            Gateway instance

        Raises:
            ValueError: If the gateway cannot be found
        """
        gateway_class = cls.resolve(gateway_name)
        gateway_instance = gateway_class(config)

        logger.info(f"Created {gateway_class.__name__} ledger gateway")
        return gateway_instance

    @classmethod
    def resolve(cls, gateway_name: str) -> Type[LedgerGateway]:
        """Find the gateway class for a name or import path"""
        if gateway_name in cls._gateways:
            return cls._gateways[gateway_name]

        if ':' not in gateway_name:
            available = ', '.join(cls._gateways.keys())
            raise ValueError(f"Unknown gateway '{gateway_name}'. Available gateways: {available}, "
                             f"or use 'package.module:ClassName'")

        module_name, class_name = gateway_name.split(':', 1)
        try:
            module = importlib.import_module(module_name)
            gateway_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Cannot load gateway '{gateway_name}': {e}") from e

        if not isinstance(gateway_class, type) or not issubclass(gateway_class, LedgerGateway):
            raise ValueError(f"Gateway class must inherit from LedgerGateway")

        return gateway_class

    @classmethod
    def register_gateway(cls, name: str, gateway_class: Type[LedgerGateway]):
        """
        Register a new gateway class.

        Args:
            name: Name of the gateway
            gateway_class: Class that inherits from LedgerGateway
        """
        if not issubclass(gateway_class, LedgerGateway):
            raise ValueError(f"Gateway class must inherit from LedgerGateway")

        cls._gateways[name] = gateway_class
        logger.info(f"Registered new gateway: {name}")
