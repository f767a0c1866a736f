from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from users.models import UserRole

from .exceptions import CheckoutError, CouponError, OrderStatusError, ReviewError
from .models import (
    AuditAction,
    AuditLog,
    Cart,
    Coupon,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Review,
    ReviewStatus,
    StoreSettings,
    WishlistItem,
)
from .services import (
    CartService,
    WishlistService,
    change_order_status,
    merge_guest_cart,
    merge_guest_wishlist,
    moderate_review,
    place_order,
    product_review_stats,
    submit_review,
    update_review,
)

SHIPPING = {
    "name": "Sabbir Hossain",
    "phone": "01700000000",
    "address": "House 12, Road 5",
    "city": "Dhaka",
    "village": "Uttara",
    "postal_code": "1230",
}


def make_coupon(code, percentage, days=30, is_active=True, products=()):
    coupon = Coupon.objects.create(
        code=code,
        percentage=Decimal(percentage),
        expiry_date=timezone.localdate() + timedelta(days=days),
        is_active=is_active,
    )
    if products:
        coupon.products.set(products)
    return coupon


class CouponEngineTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="shopper", password="x")
        self.kurta = Product.objects.create(name="Premium Kurta Set", price=Decimal("2500"))
        self.saree = Product.objects.create(name="Silk Saree", price=Decimal("3000"))
        self.service = CartService(Cart.objects.create(user=self.user))

    def test_store_wide_coupon_on_5000_subtotal(self):
        make_coupon("SAVE10", "10")
        self.service.add(self.kurta, quantity=2)

        discount = self.service.apply_coupon("save10")

        totals = self.service.totals()
        self.assertEqual(discount, Decimal("500"))
        self.assertEqual(totals["subtotal"], Decimal("5000"))
        self.assertEqual(totals["total_price"], Decimal("4500"))
        self.assertEqual(totals["shipping"], Decimal("100"))
        self.assertEqual(totals["final_total"], Decimal("4600"))
        self.assertEqual(totals["applied_coupon"], "SAVE10")

    def test_product_coupon_only_discounts_matching_lines(self):
        make_coupon("SAREE20", "20", products=[self.saree])
        self.service.add(self.kurta)
        self.service.add(self.saree)

        self.assertEqual(self.service.apply_coupon("SAREE20"), Decimal("600"))

    def test_product_coupon_without_matching_lines_fails(self):
        make_coupon("SAREE20", "20", products=[self.saree])
        self.service.add(self.kurta)

        with self.assertRaises(CouponError) as ctx:
            self.service.apply_coupon("SAREE20")

        self.assertIn("not applicable", ctx.exception.detail)
        self.service.cart.refresh_from_db()
        self.assertEqual(self.service.cart.discount, Decimal("0"))
        self.assertIsNone(self.service.cart.applied_coupon)

    def test_expired_and_inactive_coupons_are_rejected(self):
        make_coupon("OLD", "10", days=-1)
        make_coupon("OFF", "10", is_active=False)
        self.service.add(self.kurta)

        with self.assertRaisesMessage(CouponError, "expired"):
            self.service.apply_coupon("OLD")
        with self.assertRaisesMessage(CouponError, "invalid"):
            self.service.apply_coupon("OFF")

    def test_coupon_valid_through_expiry_day(self):
        make_coupon("LASTDAY", "10", days=0)
        self.service.add(self.kurta)
        self.assertEqual(self.service.apply_coupon("LASTDAY"), Decimal("250"))

    def test_new_coupon_replaces_previous_discount(self):
        make_coupon("SAVE10", "10")
        make_coupon("SAVE20", "20")
        self.service.add(self.kurta, quantity=2)

        self.service.apply_coupon("SAVE10")
        self.service.apply_coupon("SAVE20")

        self.assertEqual(self.service.totals()["discount"], Decimal("1000"))
        self.assertEqual(self.service.cart.applied_coupon.code, "SAVE20")

    def test_code_is_stored_uppercase(self):
        coupon = make_coupon("  eid25 ", "25")
        self.assertEqual(coupon.code, "EID25")


class CartServiceTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="shopper", password="x")
        self.product = Product.objects.create(name="Denim Jeans", price=Decimal("1200"))
        self.service = CartService(Cart.objects.create(user=self.user))
        make_coupon("SAVE10", "10")

    def test_add_merges_same_product_and_size(self):
        self.service.add(self.product, quantity=1, size="L")
        self.service.add(self.product, quantity=2, size="L")
        self.service.add(self.product, quantity=1, size="M")

        items = self.service.items()
        self.assertEqual(len(items), 2)
        self.assertEqual(self.service.totals()["total_items"], 4)

    def test_clear_resets_discount_and_coupon(self):
        self.service.add(self.product)
        self.service.apply_coupon("SAVE10")

        self.service.clear()

        self.service.cart.refresh_from_db()
        self.assertEqual(self.service.cart.discount, Decimal("0"))
        self.assertIsNone(self.service.cart.applied_coupon)
        self.assertEqual(self.service.items(), [])

    def test_removing_last_item_resets_discount(self):
        self.service.add(self.product)
        self.service.apply_coupon("SAVE10")

        self.service.update_quantity(self.product, 0)

        self.assertEqual(self.service.totals()["discount"], Decimal("0"))
        self.assertIsNone(self.service.totals()["applied_coupon"])

    def test_remove_coupon(self):
        self.service.add(self.product)
        self.service.apply_coupon("SAVE10")
        self.service.remove_coupon()
        self.assertEqual(self.service.totals()["discount"], Decimal("0"))

    def test_line_changes_recompute_discount(self):
        self.service.add(self.product)
        self.service.apply_coupon("SAVE10")

        self.service.add(self.product, quantity=2)
        self.assertEqual(self.service.totals()["discount"], Decimal("360"))

        self.service.update_quantity(self.product, 1)
        self.assertEqual(self.service.totals()["discount"], Decimal("120"))

    def test_removing_only_eligible_line_drops_product_coupon(self):
        belt = Product.objects.create(name="Leather Belt", price=Decimal("800"))
        make_coupon("JEANS15", "15", products=[self.product])
        self.service.add(self.product)
        self.service.add(belt)
        self.service.apply_coupon("JEANS15")

        self.service.remove(self.product)

        totals = self.service.totals()
        self.assertEqual(totals["discount"], Decimal("0"))
        self.assertIsNone(totals["applied_coupon"])
        order = place_order(self.service, customer=self.user, shipping=SHIPPING)
        self.assertEqual(order.total, Decimal("900"))

    def test_discount_never_drives_total_negative(self):
        self.service.add(self.product)
        self.service.cart.discount = Decimal("5000")
        self.service.cart.save()
        totals = self.service.totals()
        self.assertEqual(totals["total_price"], Decimal("0"))
        self.assertEqual(totals["final_total"], Decimal("100"))


class CheckoutTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="shopper", password="x")
        self.product = Product.objects.create(name="Smart Watch Pro", price=Decimal("8500"))
        self.service = CartService(Cart.objects.create(user=self.user))

    def test_place_order_snapshots_items_and_clears_cart(self):
        self.service.add(self.product, quantity=1, size="44mm")

        order = place_order(self.service, customer=self.user, shipping=SHIPPING)

        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.customer, self.user)
        self.assertEqual(order.total, Decimal("8500"))
        self.assertEqual(order.shipping, Decimal("0"))
        item = order.items.get()
        self.assertEqual((item.name, item.price, item.selected_size), ("Smart Watch Pro", Decimal("8500"), "44mm"))
        self.assertEqual(self.service.items(), [])

    def test_coupon_is_revalidated_at_checkout(self):
        make_coupon("SAVE10", "10")
        self.service.add(self.product)
        self.service.apply_coupon("SAVE10")
        # a tampered stored discount is ignored
        Cart.objects.filter(pk=self.service.cart.pk).update(discount=Decimal("8000"))
        self.service.cart.refresh_from_db()

        order = place_order(self.service, customer=self.user, shipping=SHIPPING)

        self.assertEqual(order.discount, Decimal("850"))
        self.assertEqual(order.coupon_code, "SAVE10")
        self.assertEqual(order.total, Decimal("7650"))

    def test_coupon_deactivated_before_checkout_blocks_order(self):
        coupon = make_coupon("SAVE10", "10")
        self.service.add(self.product)
        self.service.apply_coupon("SAVE10")
        Coupon.objects.filter(pk=coupon.pk).update(is_active=False)

        with self.assertRaises(CouponError):
            place_order(self.service, customer=self.user, shipping=SHIPPING)
        self.assertFalse(Order.objects.exists())

    def test_missing_shipping_fields_and_payment_reference(self):
        self.service.add(self.product)
        with self.assertRaises(CheckoutError):
            place_order(self.service, customer=self.user, shipping={**SHIPPING, "village": ""})
        with self.assertRaises(CheckoutError):
            place_order(self.service, customer=self.user, shipping=SHIPPING, payment_method="mobile")
        self.assertFalse(Order.objects.exists())

    def test_empty_cart_cannot_check_out(self):
        with self.assertRaisesMessage(CheckoutError, "empty"):
            place_order(self.service, customer=self.user, shipping=SHIPPING)


class OrderStatusTests(TestCase):
    def setUp(self):
        self.admin = get_user_model().objects.create_user(username="admin", password="x", role=UserRole.ADMIN)
        self.order = Order.objects.create(customer_name="Guest", **{f"shipping_{k}": v for k, v in SHIPPING.items()})

    def test_status_change_is_audited(self):
        result = change_order_status(self.order, OrderStatus.SHIPPED, actor=self.admin)
        self.assertTrue(result.changed)
        log = AuditLog.objects.get()
        self.assertEqual(log.action, AuditAction.ORDER_STATUS)
        self.assertEqual(log.metadata, {"from": "pending", "to": "Shipped"})

    def test_unknown_status_rejected(self):
        with self.assertRaises(OrderStatusError):
            change_order_status(self.order, "Lost")

    def test_deal_complete_is_terminal(self):
        change_order_status(self.order, OrderStatus.DEAL_COMPLETE)
        with self.assertRaises(OrderStatusError):
            change_order_status(self.order, OrderStatus.PROCESSING)

    def test_commission_failure_keeps_status_change(self):
        with mock.patch("shop.services.credit_referral_commission", side_effect=RuntimeError("db down")):
            result = change_order_status(self.order, OrderStatus.DEAL_COMPLETE, actor=self.admin)

        self.assertTrue(result.loyalty_error)
        self.assertIn("Loyalty System Error", result.detail)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DEAL_COMPLETE)


class CartApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.product = Product.objects.create(name="Yoga Mat Premium", price=Decimal("1800"))
        make_coupon("SAVE10", "10")

    def test_guest_cart_flow(self):
        response = self.client.post(
            reverse("cart-add-item"),
            data={"product_id": self.product.id, "quantity": 2},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["subtotal"], Decimal("3600"))

        response = self.client.post(reverse("cart-apply-coupon"), data={"code": "save10"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["discount"], Decimal("360"))

        response = self.client.post(reverse("cart-clear"))
        self.assertEqual(response.data["discount"], Decimal("0"))
        self.assertIsNone(response.data["applied_coupon"])

    def test_invalid_coupon_returns_400(self):
        self.client.post(reverse("cart-add-item"), data={"product_id": self.product.id}, format="json")
        response = self.client.post(reverse("cart-apply-coupon"), data={"code": "NOPE"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["detail"], "This coupon code is invalid or expired.")

    def test_guest_checkout_creates_order_without_customer(self):
        self.client.post(reverse("cart-add-item"), data={"product_id": self.product.id}, format="json")
        response = self.client.post(
            reverse("checkout"),
            data={"shipping_address": SHIPPING, "payment_method": "cod"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get()
        self.assertIsNone(order.customer)
        self.assertEqual(order.total, Decimal("1900"))


class AdminApiTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="admin", password="x", role=UserRole.ADMIN)
        self.customer = user_model.objects.create_user(username="customer", password="x")
        self.client = APIClient()
        self.client.force_authenticate(self.admin)
        self.product = Product.objects.create(name="Traditional Panjabi", price=Decimal("1500"))

    def _order(self, customer=None, status_value=OrderStatus.PROCESSING, total="1500"):
        order = Order.objects.create(
            customer=customer,
            customer_name="Buyer",
            status=status_value,
            total=Decimal(total),
            **{f"shipping_{k}": v for k, v in SHIPPING.items()},
        )
        OrderItem.objects.create(order=order, product=self.product, name="Traditional Panjabi", price=Decimal("1500"))
        return order

    def test_create_and_toggle_coupon(self):
        response = self.client.post(
            reverse("coupons-list"),
            data={
                "code": "eid25",
                "percentage": "25",
                "expiry_date": (timezone.localdate() + timedelta(days=7)).isoformat(),
                "product_ids": [self.product.id],
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["code"], "EID25")

        coupon_id = response.data["id"]
        response = self.client.post(reverse("coupons-toggle", kwargs={"pk": coupon_id}))
        self.assertFalse(response.data["is_active"])
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.COUPON_TOGGLE).exists())

    def test_coupon_percentage_out_of_range(self):
        response = self.client.post(
            reverse("coupons-list"),
            data={"code": "BAD", "percentage": "150", "expiry_date": timezone.localdate().isoformat()},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_manage_coupons(self):
        self.client.force_authenticate(self.customer)
        response = self.client.get(reverse("coupons-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_customer_only_sees_own_orders(self):
        own = self._order(customer=self.customer)
        self._order()
        self.client.force_authenticate(self.customer)
        response = self.client.get(reverse("orders-list"))
        self.assertEqual([row["id"] for row in response.data], [own.id])

    def test_customer_cannot_open_or_delete_other_orders(self):
        own = self._order(customer=self.customer)
        other = self._order()
        self.client.force_authenticate(self.customer)

        self.assertEqual(self.client.get(reverse("orders-detail", kwargs={"pk": own.id})).status_code, 200)
        self.assertEqual(self.client.get(reverse("orders-detail", kwargs={"pk": other.id})).status_code, 404)
        response = self.client.delete(reverse("orders-detail", kwargs={"pk": own.id}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_status_endpoint_reports_no_op(self):
        order = self._order(status_value=OrderStatus.DEAL_COMPLETE)
        response = self.client.post(
            reverse("orders-set-status", kwargs={"pk": order.id}),
            data={"status": OrderStatus.DEAL_COMPLETE},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["changed"])
        self.assertEqual(response.data["detail"], "This deal is already complete.")

    def test_order_stats(self):
        self._order(status_value=OrderStatus.PROCESSING, total="1000")
        self._order(status_value=OrderStatus.SHIPPED, total="2000")
        self._order(status_value=OrderStatus.CANCELLED, total="5000")
        response = self.client.get(reverse("orders-stats"))
        self.assertEqual(response.data["total_revenue"], Decimal("3000"))
        self.assertEqual(response.data["total_orders"], 3)
        self.assertEqual(response.data["active_orders"], 2)

    def test_settings_update(self):
        response = self.client.post(
            reverse("settings-list"),
            data={"free_shipping_threshold": "3000"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(StoreSettings.get_solo().free_shipping_threshold, Decimal("3000"))

    def test_order_report_and_csv(self):
        self._order()
        response = self.client.get(reverse("reports-orders"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_orders"], 1)

        response = self.client.get(reverse("reports-orders-csv"))
        self.assertEqual(response["Content-Type"], "text/csv")

    def test_report_invalid_from_date(self):
        response = self.client.get(reverse("reports-loyalty"), data={"from": "2025-99-99"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_report_rejects_reversed_range(self):
        response = self.client.get(reverse("reports-orders"), data={"from": "2026-02-01", "to": "2026-01-01"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_order_report_csv_rows(self):
        self._order(total="1500")
        response = self.client.get(reverse("reports-orders-csv"))
        header, row = response.content.decode().strip().splitlines()
        self.assertEqual(header.split(",")[:2], ["total_revenue", "total_orders"])
        self.assertEqual(row.split(",")[1], "1")

    def test_settings_reject_out_of_range_rates(self):
        for field, value in (("points_per_currency_unit", 0), ("commission_percent", "150"), ("min_withdraw_points", 0)):
            response = self.client.post(reverse("settings-list"), data={field: value}, format="json")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, field)

        store_settings = StoreSettings.get_solo()
        self.assertEqual(store_settings.points_per_currency_unit, 10)
        self.assertEqual(store_settings.commission_percent, Decimal("5"))


class GuestMergeTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="shopper", password="x")
        self.kurta = Product.objects.create(name="Premium Kurta Set", price=Decimal("2500"))
        self.belt = Product.objects.create(name="Leather Belt", price=Decimal("800"))

    def test_guest_lines_are_added_to_account_cart(self):
        account = CartService(Cart.objects.create(user=self.user))
        account.add(self.kurta, quantity=1, size="M")
        guest = CartService(Cart.objects.create(session_key="guest-session"))
        guest.add(self.kurta, quantity=2, size="M")
        guest.add(self.belt)
        make_coupon("SAVE10", "10")
        guest.apply_coupon("SAVE10")

        cart = merge_guest_cart(self.user, "guest-session")

        merged = CartService(cart)
        self.assertEqual(
            sorted((item.product.name, item.quantity) for item in merged.items()),
            [("Leather Belt", 1), ("Premium Kurta Set", 3)],
        )
        self.assertEqual(merged.totals()["applied_coupon"], "SAVE10")
        self.assertEqual(merged.totals()["discount"], Decimal("830"))
        self.assertFalse(Cart.objects.filter(session_key="guest-session").exists())

    def test_unknown_session_merges_nothing(self):
        self.assertIsNone(merge_guest_cart(self.user, "missing"))
        self.assertFalse(Cart.objects.exists())

    def test_guest_wishlist_joins_account_without_duplicates(self):
        WishlistService(user=self.user).add(self.kurta)
        guest = WishlistService(session_key="guest-session")
        guest.add(self.kurta)
        guest.add(self.belt)

        self.assertEqual(merge_guest_wishlist(self.user, "guest-session"), 1)

        saved = WishlistService(user=self.user).items()
        self.assertEqual([item.product for item in saved], [self.kurta, self.belt])
        self.assertFalse(WishlistItem.objects.filter(session_key="guest-session").exists())

    def test_cart_and_wishlist_survive_sign_in(self):
        client = APIClient()
        client.post(reverse("cart-add-item"), data={"product_id": self.kurta.id, "quantity": 2}, format="json")
        client.post(reverse("wishlist-add-item"), data={"product_id": self.belt.id}, format="json")

        self.assertTrue(client.login(username="shopper", password="x"))

        response = client.get(reverse("cart-list"))
        self.assertEqual(response.data["total_items"], 2)
        response = client.get(reverse("wishlist-list"))
        self.assertEqual([row["product"]["id"] for row in response.data["items"]], [self.belt.id])
        self.assertFalse(Cart.objects.filter(user__isnull=True).exists())


class ReviewTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="admin", password="x", role=UserRole.ADMIN)
        self.author = user_model.objects.create_user(username="author", password="x", full_name="Nusrat Jahan")
        self.other = user_model.objects.create_user(username="other", password="x")
        self.product = Product.objects.create(name="Silk Saree", price=Decimal("3000"))

    def test_new_review_waits_for_moderation(self):
        review = submit_review(self.author, self.product, 4, "  Lovely fabric ")

        self.assertEqual(review.status, ReviewStatus.PENDING)
        self.assertEqual(review.comment, "Lovely fabric")
        self.assertEqual(review.author_name, "Nusrat Jahan")

    def test_one_review_per_user_and_product(self):
        submit_review(self.author, self.product, 4)
        with self.assertRaisesMessage(ReviewError, "already reviewed"):
            submit_review(self.author, self.product, 5)

    def test_rating_must_be_one_to_five(self):
        for rating in (0, 6):
            with self.assertRaisesMessage(ReviewError, "between 1 and 5"):
                submit_review(self.author, self.product, rating)
        self.assertFalse(Review.objects.exists())

    def test_author_edit_returns_review_to_pending(self):
        review = submit_review(self.author, self.product, 3)
        moderate_review(review, ReviewStatus.APPROVED, actor=self.admin)

        update_review(review, self.author, 5, "Even better after washing", status=ReviewStatus.APPROVED)

        review.refresh_from_db()
        self.assertEqual((review.rating, review.status), (5, ReviewStatus.PENDING))

    def test_admin_edit_may_set_status(self):
        review = submit_review(self.author, self.product, 3)
        update_review(review, self.admin, 3, "", status=ReviewStatus.REJECTED)
        self.assertEqual(review.status, ReviewStatus.REJECTED)

    def test_only_author_or_admin_may_edit(self):
        review = submit_review(self.author, self.product, 3)
        with self.assertRaisesMessage(ReviewError, "your own reviews"):
            update_review(review, self.other, 1)

    def test_moderation_is_audited(self):
        review = submit_review(self.author, self.product, 3)
        moderate_review(review, ReviewStatus.APPROVED, actor=self.admin)
        log = AuditLog.objects.get(action=AuditAction.REVIEW_MODERATE)
        self.assertEqual(log.metadata, {"review_id": review.id, "from": "pending", "to": "approved"})

    def test_stats_count_approved_reviews_only(self):
        user_model = get_user_model()
        for index, (rating, review_status) in enumerate(
            [(5, ReviewStatus.APPROVED), (4, ReviewStatus.APPROVED), (4, ReviewStatus.APPROVED), (1, ReviewStatus.PENDING)]
        ):
            reviewer = user_model.objects.create_user(username=f"reviewer{index}", password="x")
            review = submit_review(reviewer, self.product, rating)
            if review_status != ReviewStatus.PENDING:
                moderate_review(review, review_status, actor=self.admin)

        stats = product_review_stats(self.product)

        self.assertEqual(stats["total_reviews"], 3)
        self.assertEqual(stats["average_rating"], Decimal("4.3"))
        self.assertEqual(stats["rating_distribution"], {1: 0, 2: 0, 3: 0, 4: 2, 5: 1})

    def test_stats_without_reviews(self):
        stats = product_review_stats(self.product)
        self.assertEqual((stats["average_rating"], stats["total_reviews"]), (Decimal("0"), 0))


class ReviewApiTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="admin", password="x", role=UserRole.ADMIN)
        self.author = user_model.objects.create_user(username="author", password="x")
        self.product = Product.objects.create(name="Silk Saree", price=Decimal("3000"))
        self.client = APIClient()

    def test_customer_submits_and_admin_approves(self):
        self.client.force_authenticate(self.author)
        response = self.client.post(
            reverse("reviews-list"),
            data={"product_id": self.product.id, "rating": 5, "comment": "Great"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        review_id = response.data["id"]

        response = self.client.post(reverse("reviews-moderate", kwargs={"pk": review_id}), data={"status": "approved"})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("reviews-moderate", kwargs={"pk": review_id}),
            data={"status": ReviewStatus.APPROVED},
            format="json",
        )
        self.assertEqual(response.data["status"], ReviewStatus.APPROVED)

        response = self.client.get(reverse("products-review-stats", kwargs={"pk": self.product.id}))
        self.assertEqual(response.data["total_reviews"], 1)

    def test_rating_out_of_range_is_400(self):
        self.client.force_authenticate(self.author)
        response = self.client.post(
            reverse("reviews-list"),
            data={"product_id": self.product.id, "rating": 6},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_public_list_shows_approved_only(self):
        pending = submit_review(self.author, self.product, 2)
        approved_author = get_user_model().objects.create_user(username="fan", password="x")
        approved = moderate_review(submit_review(approved_author, self.product, 5), ReviewStatus.APPROVED, self.admin)

        response = self.client.get(reverse("reviews-list"), data={"product": self.product.id})
        self.assertEqual([row["id"] for row in response.data], [approved.id])

        self.client.force_authenticate(self.author)
        response = self.client.get(reverse("reviews-list"), data={"product": self.product.id})
        self.assertEqual({row["id"] for row in response.data}, {approved.id, pending.id})

    def test_author_patch_resets_status(self):
        review = moderate_review(submit_review(self.author, self.product, 2), ReviewStatus.APPROVED, self.admin)
        self.client.force_authenticate(self.author)

        response = self.client.patch(
            reverse("reviews-detail", kwargs={"pk": review.id}),
            data={"comment": "Changed my mind"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], ReviewStatus.PENDING)
        self.assertEqual(response.data["rating"], 2)

    def test_other_customer_cannot_delete(self):
        review = moderate_review(submit_review(self.author, self.product, 2), ReviewStatus.APPROVED, self.admin)
        intruder = get_user_model().objects.create_user(username="intruder", password="x")
        self.client.force_authenticate(intruder)

        response = self.client.delete(reverse("reviews-detail", kwargs={"pk": review.id}))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Review.objects.filter(pk=review.id).exists())


class WishlistApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.product = Product.objects.create(name="Smart Watch Pro", price=Decimal("8500"))

    def test_add_is_idempotent_and_remove(self):
        for _ in range(2):
            response = self.client.post(reverse("wishlist-add-item"), data={"product_id": self.product.id}, format="json")
        self.assertEqual(response.data["total_items"], 1)

        response = self.client.post(reverse("wishlist-remove-item"), data={"product_id": self.product.id}, format="json")
        self.assertEqual(response.data["total_items"], 0)

    def test_inactive_product_cannot_be_saved(self):
        self.product.is_active = False
        self.product.save()
        response = self.client.post(reverse("wishlist-add-item"), data={"product_id": self.product.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
