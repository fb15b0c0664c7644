"""Tests for services.templates_service."""

import pytest

from core.cache import TemplateListingCache
from schemas import TemplateCreateRequest, TemplateValidationError
from services.templates_service import (
    SqlTemplateStore,
    TemplateNotFoundError,
    create_template,
    get_template_document,
    list_public_templates,
)
from tests.factories import TemplateFactory, canvas_json, create_async, qr_object, text_object


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TemplateListingCache:
    return TemplateListingCache(ttl=60, timer=clock)


@pytest.mark.integration
class TestGetTemplateDocument:
    async def test_parses_stored_canvas(self, db_session):
        await create_async(
            TemplateFactory,
            db_session,
            id="tpl_doc",
            canvas_json=canvas_json(text_object("Name"), qr_object()),
        )

        document = await get_template_document(db_session, "tpl_doc")

        assert document.id == "tpl_doc"
        assert document.bound_keys == {"Name"}
        assert document.has_verification_code

    async def test_unknown(self, db_session):
        with pytest.raises(TemplateNotFoundError):
            await get_template_document(db_session, "missing")

    async def test_malformed_stored_canvas(self, db_session):
        await create_async(TemplateFactory, db_session, id="tpl_bad", canvas_json="[]")

        with pytest.raises(TemplateValidationError):
            await get_template_document(db_session, "tpl_bad")

    async def test_sql_store_uses_its_own_session(self, db_session, session_maker):
        await create_async(TemplateFactory, db_session, id="tpl_store")
        await db_session.commit()

        document = await SqlTemplateStore(session_maker).get("tpl_store")

        assert document.id == "tpl_store"


@pytest.mark.integration
class TestListPublicTemplates:
    async def test_serves_from_cache_until_expiry(self, db_session, cache, clock):
        await create_async(TemplateFactory, db_session, name="First")
        assert len(await list_public_templates(db_session, cache)) == 1

        await create_async(TemplateFactory, db_session, name="Second")
        assert len(await list_public_templates(db_session, cache)) == 1

        clock.now += 61
        assert len(await list_public_templates(db_session, cache)) == 2

    async def test_query_is_normalized(self, db_session, cache):
        await create_async(TemplateFactory, db_session, name="Hackathon")

        await list_public_templates(db_session, cache, query="  HackAthon ")

        assert cache.get("hackathon", 50) is not None


@pytest.mark.integration
class TestCreateTemplate:
    async def test_public_create_invalidates_cache(self, db_session, cache):
        await list_public_templates(db_session, cache)

        await create_template(
            db_session,
            TemplateCreateRequest(
                name="New", canvas_json=canvas_json(text_object("Name")), is_public=True
            ),
            cache=cache,
        )

        assert cache.get("", 50) is None

    async def test_private_create_keeps_cache(self, db_session, cache):
        await list_public_templates(db_session, cache)

        template = await create_template(
            db_session,
            TemplateCreateRequest(name="Mine", canvas_json=canvas_json(text_object("Name"))),
            cache=cache,
        )

        assert cache.get("", 50) == []
        assert len(template.id) == 16

    async def test_invalid_canvas_is_not_stored(self, db_session):
        with pytest.raises(TemplateValidationError):
            await create_template(
                db_session, TemplateCreateRequest(name="Broken", canvas_json='{"objects": 3}')
            )
