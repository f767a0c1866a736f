from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import ProtectedError
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from shop.exceptions import WithdrawError
from shop.models import Order, OrderItem, OrderStatus, StoreSettings
from shop.services import change_order_status
from users.models import UserRole

from .models import LoyaltyTransaction, PayoutMethod, TransactionType, WithdrawRequest, WithdrawStatus
from .services import (
    approve_withdraw_request,
    credit_referral_commission,
    reject_withdraw_request,
    submit_withdraw_request,
    wallet_stats,
)


def make_order(customer=None, items=((Decimal("1000"), 2),)):
    order = Order.objects.create(
        customer=customer,
        customer_name="Buyer",
        status=OrderStatus.DELIVERED,
        shipping_name="Buyer",
        shipping_phone="01700000000",
        shipping_address="House 12",
        shipping_city="Dhaka",
        shipping_village="Uttara",
        shipping_postal_code="1230",
    )
    for price, quantity in items:
        OrderItem.objects.create(order=order, name="Item", price=price, quantity=quantity)
    return order


class CommissionLedgerTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.referrer = user_model.objects.create_user(username="referrer", password="x")
        self.customer = user_model.objects.create_user(
            username="customer",
            password="x",
            referred_by=self.referrer,
        )
        self.loner = user_model.objects.create_user(username="loner", password="x")

    def test_guest_order_creates_no_transaction(self):
        order = make_order(customer=None)

        result = change_order_status(order, OrderStatus.DEAL_COMPLETE)

        self.assertTrue(result.changed)
        self.assertIsNone(result.loyalty_transaction)
        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_customer_without_referrer_changes_no_balance(self):
        order = make_order(customer=self.loner)

        change_order_status(order, OrderStatus.DEAL_COMPLETE)

        self.referrer.refresh_from_db()
        self.loner.refresh_from_db()
        self.assertEqual(self.referrer.loyalty_points, 0)
        self.assertEqual(self.loner.loyalty_points, 0)
        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_referred_order_credits_five_percent_as_points(self):
        order = make_order(customer=self.customer)

        result = change_order_status(order, OrderStatus.DEAL_COMPLETE)

        self.referrer.refresh_from_db()
        self.assertEqual(self.referrer.loyalty_points, 1000)
        entry = LoyaltyTransaction.objects.get()
        self.assertEqual(entry.user, self.referrer)
        self.assertEqual(entry.type, TransactionType.EARN_REFERRAL)
        self.assertEqual(entry.points, 1000)
        self.assertEqual(entry.tk_amount, Decimal("100"))
        self.assertEqual(entry.order, order)
        self.assertEqual(entry.meta, {"from_customer": self.customer.id})
        self.assertEqual(result.detail, "Referrer credited with 1000 points.")

    def test_commission_sums_all_lines(self):
        order = make_order(customer=self.customer, items=[(Decimal("250"), 1), (Decimal("99.90"), 3)])

        entry = credit_referral_commission(order)

        # (250 + 299.70) * 5% = 27.485 tk -> 274.85 points -> 275
        self.assertEqual(entry.points, 275)
        self.assertEqual(entry.tk_amount, Decimal("27.49"))

    def test_reapplying_deal_complete_is_a_no_op(self):
        order = make_order(customer=self.customer)
        change_order_status(order, OrderStatus.DEAL_COMPLETE)

        result = change_order_status(order, OrderStatus.DEAL_COMPLETE)

        self.assertFalse(result.changed)
        self.referrer.refresh_from_db()
        self.assertEqual(self.referrer.loyalty_points, 1000)
        self.assertEqual(LoyaltyTransaction.objects.count(), 1)

    def test_direct_recredit_is_rejected_by_idempotency_key(self):
        order = make_order(customer=self.customer)
        credit_referral_commission(order)

        self.assertIsNone(credit_referral_commission(order))
        self.referrer.refresh_from_db()
        self.assertEqual(self.referrer.loyalty_points, 1000)

    def test_zero_point_commission_is_skipped(self):
        order = make_order(customer=self.customer, items=[(Decimal("0.50"), 1)])

        self.assertIsNone(credit_referral_commission(order))
        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_commission_rate_comes_from_store_settings(self):
        store_settings = StoreSettings.get_solo()
        store_settings.commission_percent = Decimal("10")
        store_settings.save()
        order = make_order(customer=self.customer)

        self.assertEqual(credit_referral_commission(order).points, 2000)

    def test_ledger_rows_block_user_and_order_deletion(self):
        order = make_order(customer=self.customer)
        entry = credit_referral_commission(order)

        with self.assertRaises(ProtectedError):
            self.referrer.delete()
        with self.assertRaises(ProtectedError):
            order.delete()
        entry.refresh_from_db()
        self.assertEqual((entry.user_id, entry.order_id), (self.referrer.id, order.id))

    def test_ledger_entries_are_append_only(self):
        entry = credit_referral_commission(make_order(customer=self.customer))
        entry.points = 5
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()


class WithdrawFlowTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.user = user_model.objects.create_user(username="earner", password="x", loyalty_points=1500)
        self.admin = user_model.objects.create_user(username="admin", password="x", role=UserRole.ADMIN)

    def _submit(self, points):
        return submit_withdraw_request(self.user, points, PayoutMethod.BKASH, "01700000000")

    def test_request_above_balance_is_rejected_before_any_write(self):
        with self.assertRaisesMessage(WithdrawError, "Insufficient points"):
            self._submit(2000)

        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 1500)
        self.assertFalse(WithdrawRequest.objects.exists())
        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_minimum_withdrawal_is_1000_points(self):
        with self.assertRaisesMessage(WithdrawError, "Minimum withdrawal"):
            self._submit(999)

        request = self._submit(1000)

        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 500)
        self.assertEqual(request.status, WithdrawStatus.PROCESSING)
        self.assertEqual(request.withdraw_tk, Decimal("100"))
        entry = LoyaltyTransaction.objects.get()
        self.assertEqual(entry.type, TransactionType.WITHDRAW_REQUEST)
        self.assertEqual(entry.points, -1000)
        self.assertEqual(entry.tk_amount, Decimal("-100"))

    def test_reject_refunds_points(self):
        request = self._submit(1000)

        reject_withdraw_request(request, admin=self.admin, note="Wrong number")

        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 1500)
        request.refresh_from_db()
        self.assertEqual(request.status, WithdrawStatus.REJECTED)
        self.assertEqual(request.processed_by, self.admin)
        refund = LoyaltyTransaction.objects.filter(type=TransactionType.WITHDRAW_REJECTED_REFUND)
        self.assertEqual(refund.count(), 1)
        self.assertEqual(refund.get().points, 1000)
        self.assertEqual(refund.get().meta, {"request_id": request.id})

    def test_approve_keeps_balance_and_logs_marker(self):
        request = self._submit(1000)

        approve_withdraw_request(request, admin=self.admin)

        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 500)
        marker = LoyaltyTransaction.objects.get(type=TransactionType.WITHDRAW_COMPLETED)
        self.assertEqual((marker.points, marker.tk_amount), (0, Decimal("0")))

    def test_terminal_requests_cannot_transition(self):
        request = self._submit(1000)
        approve_withdraw_request(request, admin=self.admin)

        with self.assertRaises(WithdrawError):
            reject_withdraw_request(request, admin=self.admin)
        with self.assertRaises(WithdrawError):
            approve_withdraw_request(request, admin=self.admin)
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 500)

    def test_wallet_stats(self):
        referred = get_user_model().objects.create_user(username="friend", password="x", referred_by=self.user)
        credit_referral_commission(make_order(customer=referred))
        completed = self._submit(1000)
        approve_withdraw_request(completed, admin=self.admin)
        self._submit(1000)

        stats = wallet_stats(self.user)

        self.assertEqual(stats, {"points_balance": 500, "total_earned": 1000, "total_withdrawn": 1000})


class LoyaltyApiTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.user = user_model.objects.create_user(username="earner", password="x", loyalty_points=1200)
        self.other = user_model.objects.create_user(username="other", password="x", loyalty_points=3000)
        self.admin = user_model.objects.create_user(username="admin", password="x", role=UserRole.ADMIN)
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_submit_withdrawal(self):
        response = self.client.post(
            reverse("withdrawals-list"),
            data={"points": 1000, "method": "NAGAD", "number": "01800000000"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["withdraw_tk"], "100.00")
        self.assertEqual(response.data["status"], WithdrawStatus.PROCESSING)

    def test_submit_withdrawal_below_minimum(self):
        response = self.client.post(
            reverse("withdrawals-list"),
            data={"points": 999, "method": "BKASH", "number": "01800000000"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["detail"], "Minimum withdrawal is 1000 points")

    def test_customer_cannot_approve(self):
        request = submit_withdraw_request(self.user, 1000, PayoutMethod.BKASH, "01700000000")
        response = self.client.post(reverse("withdrawals-approve", kwargs={"pk": request.id}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_rejects_request(self):
        request = submit_withdraw_request(self.user, 1000, PayoutMethod.BKASH, "01700000000")
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            reverse("withdrawals-reject", kwargs={"pk": request.id}),
            data={"note": "Number unreachable"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], WithdrawStatus.REJECTED)
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 1200)

        response = self.client.post(reverse("withdrawals-reject", kwargs={"pk": request.id}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_transactions_are_scoped_to_user(self):
        submit_withdraw_request(self.user, 1000, PayoutMethod.BKASH, "01700000000")
        submit_withdraw_request(self.other, 2000, PayoutMethod.NAGAD, "01900000000")

        response = self.client.get(reverse("loyalty-transactions-list"))
        self.assertEqual([row["user"] for row in response.data], [self.user.id])

        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("loyalty-transactions-list"), data={"user": self.other.id})
        self.assertEqual([row["points"] for row in response.data], [-2000])

    def test_wallet_endpoint(self):
        response = self.client.get(reverse("loyalty-wallet"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["points_balance"], 1200)

    def test_deal_complete_over_api_credits_referrer(self):
        customer = get_user_model().objects.create_user(username="friend", password="x", referred_by=self.user)
        order = make_order(customer=customer)
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            reverse("orders-set-status", kwargs={"pk": order.id}),
            data={"status": OrderStatus.DEAL_COMPLETE},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["points_credited"], 1000)
        self.assertFalse(response.data["loyalty_error"])
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 2200)

    def test_loyalty_report(self):
        submit_withdraw_request(self.user, 1000, PayoutMethod.BKASH, "01700000000")
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("reports-loyalty"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["withdrawals_pending"], 1)

    def test_admin_cannot_delete_credited_order(self):
        customer = get_user_model().objects.create_user(username="friend", password="x", referred_by=self.user)
        credited = make_order(customer=customer)
        change_order_status(credited, OrderStatus.DEAL_COMPLETE)
        plain = make_order(customer=None)
        self.client.force_authenticate(self.admin)

        response = self.client.delete(reverse("orders-detail", kwargs={"pk": credited.id}))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(LoyaltyTransaction.objects.get().order_id, credited.id)
        response = self.client.delete(reverse("orders-detail", kwargs={"pk": plain.id}))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
