from rest_framework import routers


class UUIDRouter(routers.SimpleRouter):
    """
    SimpleRouter whose detail routes only match UUID primary keys, so a
    malformed id is a plain 404 rather than a UUID parsing error.
    """
    uuid_regex = '[0-9a-fA-F-]{36}'

    def get_lookup_regex(self, viewset, lookup_prefix=''):
        lookup_field = getattr(viewset, 'lookup_field', 'pk')
        lookup_url_kwarg = getattr(viewset, 'lookup_url_kwarg', None) or lookup_field
        lookup_value = getattr(viewset, 'lookup_value_regex', self.uuid_regex)
        return f'(?P<{lookup_prefix}{lookup_url_kwarg}>{lookup_value})'
