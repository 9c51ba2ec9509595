from fulfil.data.catalog.item import Item

__all__ = ['Item']
