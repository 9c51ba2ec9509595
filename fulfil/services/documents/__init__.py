from fulfil.services.documents.document_search_service import DocumentSearchFilters, DocumentSearchService

__all__ = ['DocumentSearchFilters', 'DocumentSearchService']
