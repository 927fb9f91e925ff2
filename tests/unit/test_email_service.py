"""Unit tests for email rendering and the send guards (Resend never called)."""

import pytest
from unittest.mock import patch

from enrollpay.services import email_service
from enrollpay.services.email_service import render_template


def test_render_template_fills_placeholders():
    body = render_template("Hello {student_name}, welcome to {course_name}.", {
        "student_name": "Amina",
        "course_name": "English B1",
    })
    assert body == "Hello Amina, welcome to English B1."


def test_render_template_keeps_unknown_placeholders():
    body = render_template("Pay {amount} before {deadline}", {"amount": "20000"})
    assert body == "Pay 20000 before {deadline}"


def test_render_template_malformed_falls_back_to_raw():
    template = "Broken {student_name"
    assert render_template(template, {"student_name": "Amina"}) == template


def test_send_without_api_key_is_skipped():
    with patch.object(email_service.settings, "RESEND_API_KEY", ""):
        assert email_service.send_refund_notification("a@example.org", "Amina", "English", "20000") is False


def test_send_in_test_environment_is_skipped():
    with patch.object(email_service.settings, "RESEND_API_KEY", "re_test"), \
            patch.object(email_service.settings, "ENVIRONMENT", "test"):
        assert email_service.send_enrollment_expiration("a@example.org", "Amina", "English", 48) is True


@pytest.mark.parametrize("address", ["student@test.com", "someone@RESEND.DEV"])
def test_test_domains_are_skipped(address):
    with patch.object(email_service.settings, "ENVIRONMENT", "production"):
        assert email_service._should_skip_email(address) is True


def test_real_domain_not_skipped_outside_tests():
    with patch.object(email_service.settings, "ENVIRONMENT", "production"):
        assert email_service._should_skip_email("student@school.org") is False
