from pricewatch.connectors.qos_connector import QOSConnector

__all__ = ["QOSConnector"]
