"""Admin report figures shared by the JSON and CSV report endpoints."""

import csv
import io

from django.db import models
from django.http import HttpResponse
from django.utils.dateparse import parse_date

from loyalty.models import LoyaltyTransaction, TransactionType, WithdrawRequest, WithdrawStatus

from .models import Order, OrderStatus
from .services import order_stats


class DateRangeError(ValueError):
    pass


def _parse_bound(params, name):
    raw = params.get(name)
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise DateRangeError(f"Invalid {name} date")
    return value


def parse_date_range(params):
    """Return ``(from, to)`` dates from query params, either may be ``None``."""
    start_date = _parse_bound(params, "from")
    end_date = _parse_bound(params, "to")
    if start_date and end_date and start_date > end_date:
        raise DateRangeError("from date must not be after to date")
    return start_date, end_date


def _within(queryset, start_date, end_date):
    if start_date:
        queryset = queryset.filter(created_at__date__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__date__lte=end_date)
    return queryset


def order_report(start_date=None, end_date=None) -> dict:
    orders = _within(Order.objects.all(), start_date, end_date)
    data = order_stats(orders)
    data["deal_complete_orders"] = orders.filter(status=OrderStatus.DEAL_COMPLETE).count()
    data["cancelled_orders"] = orders.filter(status=OrderStatus.CANCELLED).count()
    return data


def loyalty_report(start_date=None, end_date=None) -> dict:
    transactions = _within(LoyaltyTransaction.objects.all(), start_date, end_date)
    requests = _within(WithdrawRequest.objects.all(), start_date, end_date)

    earned = transactions.filter(type=TransactionType.EARN_REFERRAL).aggregate(
        points=models.Sum("points"),
        tk=models.Sum("tk_amount"),
    )
    completed = requests.filter(status=WithdrawStatus.COMPLETED).aggregate(
        points=models.Sum("points_amount"),
        tk=models.Sum("withdraw_tk"),
    )
    return {
        "referral_points_earned": earned["points"] or 0,
        "referral_commission_tk": earned["tk"] or 0,
        "withdrawals_pending": requests.filter(status=WithdrawStatus.PROCESSING).count(),
        "withdrawals_completed": requests.filter(status=WithdrawStatus.COMPLETED).count(),
        "withdrawals_rejected": requests.filter(status=WithdrawStatus.REJECTED).count(),
        "points_withdrawn": completed["points"] or 0,
        "tk_withdrawn": completed["tk"] or 0,
    }


def csv_response(data: dict, filename: str) -> HttpResponse:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(data.keys())
    writer.writerow(data.values())
    response = HttpResponse(buffer.getvalue(), content_type="text/csv")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
