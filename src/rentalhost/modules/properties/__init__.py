from rentalhost.modules.properties.service import PropertyService

__all__ = ["PropertyService"]
