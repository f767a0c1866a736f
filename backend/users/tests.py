import re

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from .models import UserRole
from .services import register_user


class ReferralCodeTests(TestCase):
    def test_code_is_issued_on_create(self):
        user = get_user_model().objects.create_user(
            username="rahim",
            password="pass1234",
            full_name="Rahim Ahmed",
        )
        self.assertRegex(user.referral_code, r"^RAHIMA\d{4}$")

    def test_code_falls_back_to_email_then_default(self):
        user_model = get_user_model()
        from_email = user_model.objects.create_user(username="u1", password="x", email="nusrat.j@example.com")
        anonymous = user_model.objects.create_user(username="u2", password="x")
        self.assertTrue(from_email.referral_code.startswith("NUSRAT"))
        self.assertTrue(re.fullmatch(r"USER\d{4}", anonymous.referral_code))

    def test_code_does_not_change_on_save(self):
        user = get_user_model().objects.create_user(username="karim", password="x")
        code = user.referral_code
        user.full_name = "Karim Ullah"
        user.save()
        user.refresh_from_db()
        self.assertEqual(user.referral_code, code)


class RegisterUserTests(TestCase):
    def setUp(self):
        self.referrer = get_user_model().objects.create_user(username="referrer", password="x")

    def test_register_with_referral_code_links_referrer(self):
        user = register_user(
            username="newbie",
            password="S3cure-pass-123",
            referral_code=self.referrer.referral_code.lower(),
        )
        self.assertEqual(user.referred_by, self.referrer)

    def test_unknown_referral_code_is_ignored(self):
        user = register_user(username="newbie", password="S3cure-pass-123", referral_code="NOPE0000")
        self.assertIsNone(user.referred_by)
        self.assertEqual(user.role, UserRole.CUSTOMER)


class SignupApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.referrer = get_user_model().objects.create_user(username="referrer", password="x")

    def test_signup_with_code(self):
        response = self.client.post(
            reverse("auth-signup"),
            data={
                "username": "shopper",
                "password": "S3cure-pass-123",
                "referral_code": self.referrer.referral_code,
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["referred_by"], self.referrer.id)
        self.assertEqual(response.data["loyalty_points"], 0)

    def test_signup_uses_code_captured_from_query_string(self):
        self.client.get(reverse("products-list"), data={"ref": self.referrer.referral_code})
        response = self.client.post(
            reverse("auth-signup"),
            data={"username": "shopper", "password": "S3cure-pass-123"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["referred_by"], self.referrer.id)

    def test_signup_rejects_duplicate_username(self):
        response = self.client.post(
            reverse("auth-signup"),
            data={"username": "referrer", "password": "S3cure-pass-123"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProfileApiTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="customer", password="pass1234")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_me_returns_referral_link(self):
        response = self.client.get(reverse("auth-me"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data["referral_link"],
            f"https://shopvely.test/?ref={self.user.referral_code}",
        )

    def test_referral_code_and_balance_are_read_only(self):
        code = self.user.referral_code
        response = self.client.patch(
            reverse("auth-me"),
            data={"referral_code": "HACKED1234", "loyalty_points": 99999, "full_name": "Customer One"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.referral_code, code)
        self.assertEqual(self.user.loyalty_points, 0)
        self.assertEqual(self.user.full_name, "Customer One")

    def test_referral_qr_returns_png(self):
        response = self.client.get(reverse("auth-referral-qr"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], "image/png")

    def test_user_list_is_admin_only(self):
        response = self.client.get(reverse("users-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        admin = get_user_model().objects.create_user(username="boss", password="x", role=UserRole.ADMIN)
        self.client.force_authenticate(admin)
        response = self.client.get(reverse("users-list"), data={"role": UserRole.CUSTOMER})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["username"] for row in response.data], ["customer"])
