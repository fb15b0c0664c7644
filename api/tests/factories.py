"""Factory Boy factories and canvas builders for generating test data.

Usage:
    # Persist a certificate
    cert = await create_async(CertificateFactory, db_session, id="c1abcdef")

    # A canvas the editor would produce
    canvas = canvas_json(text_object("Name"), qr_object())
"""

import json
import secrets
from datetime import UTC, datetime
from typing import Any

import factory
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from models import Certificate, CertificateVisitor, Template

fake = Faker()

# Must match the env defaults set in conftest.py
TEST_SALT = "test-daily-salt"
TEST_SITE_URL = "https://certs.example.com"
FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


# =============================================================================
# Async Factory Helpers
# =============================================================================


async def create_async(
    factory_class: type[factory.Factory], db: AsyncSession, **kwargs
):
    """Create an instance using a factory and persist to database.

    Usage:
        cert = await create_async(CertificateFactory, db_session, is_active=False)
    """
    instance = factory_class.build(**kwargs)
    db.add(instance)
    await db.flush()
    await db.refresh(instance)
    return instance


# =============================================================================
# Canvas builders (Fabric.js-style JSON as saved by the editor)
# =============================================================================


def text_object(
    dynamic_key: str | None = None,
    *,
    text: str | None = None,
    left: float = 421,
    top: float = 250,
    **extra: Any,
) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "type": "variableTextbox" if dynamic_key else "textbox",
        "left": left,
        "top": top,
        "width": 400,
        "originX": "center",
        "fontSize": 36,
        "fontFamily": "Georgia",
        "fill": "#1f2937",
        "textAlign": "center",
        "text": text if text is not None else f"{{{{{dynamic_key}}}}}",
    }
    if dynamic_key:
        obj["dynamicKey"] = dynamic_key
        obj["isPlaceholder"] = True
    obj.update(extra)
    return obj


def qr_object(size: int = 120, **extra: Any) -> dict[str, Any]:
    obj = {
        "type": "image",
        "left": 700,
        "top": 450,
        "width": size,
        "height": size,
        "verificationId": "PLACEHOLDER",
        "qrColor": "#000000",
        "qrBackgroundColor": "#ffffff",
    }
    obj.update(extra)
    return obj


def rect_object(**extra: Any) -> dict[str, Any]:
    obj = {
        "type": "rect",
        "left": 10,
        "top": 10,
        "width": 822,
        "height": 575,
        "fill": "transparent",
        "stroke": "#c9a227",
        "strokeWidth": 4,
    }
    obj.update(extra)
    return obj


def canvas_json(*objects: dict[str, Any], background: str = "#ffffff") -> str:
    return json.dumps({"version": "5.3.0", "objects": list(objects), "background": background})


DEFAULT_CANVAS = canvas_json(
    rect_object(),
    text_object(text="Certificate of Achievement", top=100),
    text_object("Name"),
    text_object("Course", top=320, fontSize=20),
    qr_object(),
)


# =============================================================================
# Model Factories
# =============================================================================


class TemplateFactory(factory.Factory):
    """Factory for creating Template instances."""

    class Meta:
        model = Template

    id = factory.LazyFunction(lambda: secrets.token_urlsafe(12))
    name = factory.LazyAttribute(lambda _: f"{fake.catch_phrase()} Certificate")
    canvas_json = DEFAULT_CANVAS
    width = 842
    height = 595
    owner_id = "owner_1"
    is_public = True
    creator_name = factory.LazyAttribute(lambda _: fake.name())
    tags = factory.LazyFunction(list)
    certificate_count = 0
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))


class CertificateFactory(factory.Factory):
    """Factory for creating Certificate instances."""

    class Meta:
        model = Certificate

    id = factory.LazyFunction(lambda: secrets.token_urlsafe(9))
    template_id = "tpl_default"
    owner_id = "owner_1"
    recipient_name = factory.LazyAttribute(lambda _: fake.name())
    recipient_email = factory.LazyAttribute(lambda _: fake.email())
    title = "Certificate of Completion"
    description = None
    issued_at = factory.LazyFunction(lambda: datetime.now(UTC))
    issuer_name = "Serenity"
    view_count = 0
    is_active = True
    metadata_ = factory.LazyFunction(dict)
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))


class RevokedCertificateFactory(CertificateFactory):
    """Factory for creating revoked certificates."""

    is_active = False


class CertificateVisitorFactory(factory.Factory):
    class Meta:
        model = CertificateVisitor

    certificate_id = "c1"
    visitor_hash = factory.LazyFunction(lambda: secrets.token_hex(16))
    first_view_at = factory.LazyFunction(lambda: datetime.now(UTC))
    last_view_at = factory.LazyFunction(lambda: datetime.now(UTC))
    view_count = 1
