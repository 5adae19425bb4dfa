from datetime import datetime

import pytest

from territory_api.services import mail as mail_service
from territory_api.services.mail import (
    MailConfigurationError,
    MailTemplateNotFound,
    build_message,
    get_mail,
    html_to_text,
    send_mail_noreply,
)

DATA = {"name": "Alice", "link": "https://example.com/auth/confirm?token=abc&x=1"}


def test_confirmation_in_english():
    mail = get_mail("confirmation", "gb", DATA)
    assert mail.subject == "Djahmo - Signup Confirmation"
    assert "Hello Alice" in mail.html
    assert 'href="https://example.com/auth/confirm?token=abc&amp;x=1"' in mail.html
    assert "All rights reserved" in mail.html
    assert str(datetime.now().year) in mail.html
    assert "{{" not in mail.html


def test_reset_in_french():
    mail = get_mail("reset", "fr", DATA)
    assert mail.subject == "Djahmo - Réinitialisation du mot de passe"
    assert "Bonjour <b>Alice</b>" in mail.html
    assert "Tous droits réservés" in mail.html


def test_unknown_language_falls_back_to_english():
    assert get_mail("reset", "de", DATA).subject == "Djahmo - Password Reset"
    assert get_mail("reset", "", DATA).subject == "Djahmo - Password Reset"


def test_unknown_type_raises():
    with pytest.raises(MailTemplateNotFound):
        get_mail("newsletter", "gb", DATA)


def test_placeholders_are_escaped():
    mail = get_mail("confirmation", "gb", {"name": "<script>", "link": "x"})
    assert "<script>" not in mail.html
    assert "&lt;script&gt;" in mail.html


def test_html_to_text_keeps_links_and_breaks():
    text = html_to_text('<p>Hello <b>Bob</b>,<br/>line two</p><a href="https://x.test/a">Open</a>')
    assert "Hello Bob,\nline two" in text
    assert "Open (https://x.test/a)" in text
    assert html_to_text("") == ""


def test_build_message_has_text_and_html_parts():
    mail = get_mail("confirmation", "gb", DATA)
    message = build_message(mail, "no-reply@djahmo.fr", "alice@example.com")

    assert message["Subject"] == mail.subject
    assert message["From"] == "Djahmo Notifications <no-reply@djahmo.fr>"
    assert message["To"] == "alice@example.com"
    types = [part.get_content_type() for part in message.iter_parts()]
    assert types == ["text/plain", "text/html"]


async def test_send_mail_noreply_uses_smtp(monkeypatch):
    calls = []

    async def fake_send(message, **kwargs):
        calls.append((message, kwargs))

    monkeypatch.setattr(mail_service.aiosmtplib, "send", fake_send)
    await send_mail_noreply("confirmation", "gb", "alice@example.com", DATA)

    message, kwargs = calls[0]
    assert message["To"] == "alice@example.com"
    assert kwargs["username"] == "no-reply@djahmo.fr"
    assert kwargs["password"] == "test-token"
    assert kwargs["use_tls"] is False


async def test_send_mail_noreply_requires_token(monkeypatch):
    monkeypatch.setenv("MAIL_NOREPLY_TOKEN", "")
    with pytest.raises(MailConfigurationError):
        await send_mail_noreply("confirmation", "gb", "alice@example.com", DATA)
