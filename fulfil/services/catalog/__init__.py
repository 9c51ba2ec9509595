from fulfil.services.catalog.item_service import ItemService

__all__ = ['ItemService']
