import re
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.utils.translation import gettext_lazy as _


room_number_validator = RegexValidator(
    regex=r'^[A-Z]\d{3}$',
    message=_("Room number must be a capital letter followed by three digits, e.g. 'A101'.")
)

phone_number_validator = RegexValidator(
    regex=r'^[6-9]\d{9}$',
    message=_('Phone number must be 10 digits starting with 6-9.')
)

image_url_validator = RegexValidator(
    regex=r'^(https?://.+\.(jpg|jpeg|png|gif|webp)|/uploads/.+)$',
    message=_('Image must be an http(s) URL ending in jpg, jpeg, png, gif or webp, or an /uploads/ path.'),
    flags=re.IGNORECASE,
)


def validate_image_list(value):
    """Validate every entry of a JSON list of image URLs."""
    if not isinstance(value, list):
        raise ValidationError(_('Images must be a list of URLs.'))
    for url in value:
        if not isinstance(url, str):
            raise ValidationError(_('Images must be a list of URLs.'))
        image_url_validator(url)


def validate_tag_list(value):
    """Tags are a flat list of short strings."""
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise ValidationError(_('Tags must be a list of strings.'))
