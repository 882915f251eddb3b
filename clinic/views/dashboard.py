"""
Administrative dashboard endpoint.

Summarises today's appointments, billing and pharmacy alerts.  Only
administrators may access it.
"""
from __future__ import annotations

from collections import Counter
from decimal import Decimal

from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment, Bill
from clinic.permissions import IsAdminRole
from clinic.services.sessions import available_slots, sessions_for_date
from clinic.services.stock import StockAlert, classify, stock_queryset


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_dashboard(request):
    """Return today's counters for administrators."""
    now = timezone.now()
    today = timezone.localdate()

    by_status = {
        row['status']: row['n']
        for row in Appointment.objects.filter(session__date=today).values('status').annotate(n=Count('id'))
    }
    bills = Bill.objects.filter(created_at__date=today)
    revenue = bills.filter(payment_status=Bill.PAYMENT_PAID).aggregate(total=Sum('final_amount'))['total']
    pending_payment = bills.filter(payment_status=Bill.PAYMENT_PENDING).count()

    alerts = Counter()
    for st in stock_queryset(now=now):
        alerts.update(a.value for a in classify(st, now).alerts)

    sessions = [
        {
            'id': s.id,
            'name': s.name,
            'shortCode': s.short_code,
            'currentTokens': s.current_tokens,
            'maxTokens': s.max_tokens,
            'availableSlots': available_slots(s),
        }
        for s in sessions_for_date(today)
    ]
    return Response({
        'ok': True,
        'data': {
            'date': today.isoformat(),
            'appointments': {
                'total': sum(by_status.values()),
                'byStatus': {code: by_status.get(code, 0) for code, _ in Appointment.STATUS_CHOICES},
            },
            'billing': {
                'bills': bills.count(),
                'revenue': revenue or Decimal('0.00'),
                'pendingPayment': pending_payment,
            },
            'stockAlerts': {a.value: alerts.get(a.value, 0) for a in StockAlert},
            'sessions': sessions,
        },
    })
