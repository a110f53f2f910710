"""
Outgoing account e-mails.

Messages go out through Django's mail API, so the transport (SMTP,
console, locmem in tests) is chosen by ``EMAIL_BACKEND``.
"""

import logging
import smtplib

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils.html import escape

from baklava_wholesale.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

DOCUMENT_REQUEST_SUBJECT = "Document request / Solicitud de documentos"
DEFAULT_DOCUMENT_MESSAGE = "Please upload your documents."

_REQUEST_DOCS_TEXT = {
    "en": (
        "We are happy that you are interested in working with us.\n"
        "We kindly ask you to provide the following business documents:\n"
        "- Company registration (CIF)\n"
        "- Tax registration certificate\n"
        "- Proof of business address\n"
        "Thank you!"
    ),
    "es": (
        "Nos alegra que esté interesado en trabajar con nosotros.\n"
        "Le pedimos amablemente que proporcione los siguientes documentos comerciales:\n"
        "- Registro de la empresa (CIF)\n"
        "- Certificado de alta censal\n"
        "- Justificante del domicilio fiscal\n"
        "¡Gracias!"
    ),
}


def _greeting(lang, name):
    return f"Hi {name}," if lang == "en" else f"Hola {name},"


def build_document_request(user, message=""):
    """Return the bilingual (plain text, html) bodies of a document request."""
    name = user.business_name or "User"
    text_parts = []
    html_parts = []
    for lang in ("en", "es"):
        body = _REQUEST_DOCS_TEXT[lang]
        text_parts.append(f"{_greeting(lang, name)}\n\n{body}")
        html_parts.append(
            f"<p>{escape(_greeting(lang, name))}</p>"
            + "".join(f"<p>{escape(line)}</p>" for line in body.splitlines())
        )

    if message:
        text_parts.append(message)
        html_parts.append(f"<p>{escape(message)}</p>")

    return "\n\n---\n\n".join(text_parts), "<hr/>".join(html_parts)


def send_document_request(user, message=""):
    """
    Send the document request e-mail to ``user``.

    Raises ``ExternalServiceError`` if the mail backend rejects the
    message; the caller decides what state to leave behind.
    """
    text, html = build_document_request(user, message)
    email = EmailMultiAlternatives(
        subject=DOCUMENT_REQUEST_SUBJECT,
        body=text,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[user.email],
        reply_to=settings.EMAIL_REPLY_TO or None,
    )
    email.attach_alternative(html, "text/html")
    try:
        email.send(fail_silently=False)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Document request e-mail to %s failed: %s", user.email, exc)
        raise ExternalServiceError("The document request e-mail could not be sent.") from exc

    logger.info("Document request e-mail sent to %s", user.email)
