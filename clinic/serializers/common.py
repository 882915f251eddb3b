from datetime import datetime, time

import bleach
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import serializers


def clean_text(value):
    return bleach.clean((value or '').strip(), strip=True)


class CleanCharField(serializers.CharField):
    """CharField whose value is stripped of any markup."""

    def to_internal_value(self, data):
        return clean_text(super().to_internal_value(data))


class DateOrDateTimeField(serializers.DateTimeField):
    """Accepts ``YYYY-MM-DD`` (start of that day, local time) or a full datetime."""

    def to_internal_value(self, value):
        if isinstance(value, str) and len(value.strip()) == 10:
            day = parse_date(value.strip())
            if day is not None:
                return timezone.make_aware(datetime.combine(day, time.min))
        return super().to_internal_value(value)


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)


def paginate(qs, page=None, page_size=None):
    """Slice ``qs`` and return ``(rows, pagination)`` in the API's shape."""
    total = qs.count()
    page = page or 1
    if page_size:
        start = (page - 1) * page_size
        qs = qs[start:start + page_size]
    return list(qs), {'total': total, 'page': page, 'pageSize': page_size or total}
