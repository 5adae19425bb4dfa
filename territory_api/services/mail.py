"""
Transactional e-mail: rendering of localized templates and delivery over SMTP.

Templates live in `mail_templates/<lang>/<type>.html`, extend `base.html`
and set their `title`, which also becomes the subject.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Dict, Mapping, Optional

import aiosmtplib
from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from territory_api.core.settings import get_app_settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "mail_templates"
DEFAULT_LANG = "gb"
SUPPORTED_LANGS = ("fr", "gb")
ALL_RIGHTS: Dict[str, str] = {
    "fr": "Tous droits réservés",
    "gb": "All rights reserved",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


class MailTemplateNotFound(LookupError):
    """Raised when no template exists for a mail type."""


class MailConfigurationError(RuntimeError):
    """Raised when the sender address or its SMTP token is missing."""


@dataclass(frozen=True)
class RenderedMail:
    subject: str
    html: str


def _load(mail_type: str, lang: str):
    return _env.get_template(f"{lang}/{mail_type}.html")


# PUBLIC_INTERFACE
def get_mail(mail_type: str, lang: str, data: Optional[Mapping[str, str]] = None) -> RenderedMail:
    """
    Render the `mail_type` mail for `lang` with `data` placeholders (`name`, `link`).

    Unknown languages fall back to "gb".

    Raises:
        MailTemplateNotFound: if the type does not exist in any language.
    """
    lang = (lang or DEFAULT_LANG).lower()
    if lang not in SUPPORTED_LANGS:
        lang = DEFAULT_LANG
    try:
        template = _load(mail_type, lang)
    except TemplateNotFound:
        try:
            lang = DEFAULT_LANG
            template = _load(mail_type, lang)
        except TemplateNotFound as exc:
            raise MailTemplateNotFound(f"No mail template for type {mail_type!r}") from exc

    context = {
        "year": datetime.now(tz=timezone.utc).year,
        "allrights": ALL_RIGHTS[lang],
        **(data or {}),
    }
    module = template.make_module(context)
    title = getattr(module, "title", "")
    settings = get_app_settings()
    return RenderedMail(subject=f"{settings.MAIL_SENDER_NAME} - {title}", html=str(module))


# PUBLIC_INTERFACE
def html_to_text(html: str) -> str:
    """Plain-text alternative of an HTML mail; links keep their target in parentheses."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for link in soup.find_all("a", href=True):
        text = link.get_text().strip()
        href = link["href"]
        link.replace_with(f"{text} ({href})" if text and text != href else href)
    text = soup.get_text()
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def build_message(mail: RenderedMail, sender: str, to: str) -> EmailMessage:
    settings = get_app_settings()
    message = EmailMessage()
    message["Subject"] = mail.subject
    message["From"] = formataddr((f"{settings.MAIL_SENDER_NAME} {settings.MAIL_NOREPLY_LABEL}", sender))
    message["To"] = to
    message.set_content(html_to_text(mail.html))
    message.add_alternative(mail.html, subtype="html")
    return message


# PUBLIC_INTERFACE
async def send_mail_noreply(mail_type: str, lang: str, to: str, data: Optional[Mapping[str, str]] = None) -> None:
    """
    Render and send a mail from the no-reply address.

    Raises:
        MailConfigurationError: if the no-reply address or token is not configured.
        MailTemplateNotFound: if the mail type does not exist.
        aiosmtplib.SMTPException: if delivery fails.
    """
    settings = get_app_settings()
    sender = settings.MAIL_NOREPLY_ADDRESS
    token = settings.MAIL_NOREPLY_TOKEN
    if not sender or not token:
        raise MailConfigurationError("Missing no-reply sender or token")

    mail = get_mail(mail_type, lang, data)
    message = build_message(mail, sender, to)
    logger.info("Sending %s mail (%s)", mail_type, lang)
    await aiosmtplib.send(
        message,
        hostname=settings.MAIL_HOST,
        port=settings.MAIL_PORT,
        username=sender,
        password=token,
        use_tls=settings.MAIL_PORT == 465,
    )
