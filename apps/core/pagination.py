from rest_framework.pagination import PageNumberPagination


class StandardPagination(PageNumberPagination):
    """Page-number pagination; clients may shrink or grow pages with ?limit=."""
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 100
