import pytest

from app.core.errors import MissingFieldError, NotFoundError, ValidationError
from app.modules.audit.service import AuditRecorder
from app.modules.collections.repository import CollectionRepository


async def test_create_collection_records_audit(collections, session):
    c = await collections.create_collection({"owner_user_id": "42", "title": "  Best of  "}, actor_user_id="u-1")
    assert c.collection_id == "c-0001"
    assert c.title == "Best of"
    assert c.visibility == "private"

    rows = await AuditRecorder(session).list_for(c.collection_id)
    assert [r.action for r in rows] == ["collection_create"]


async def test_create_collection_needs_a_title(collections):
    with pytest.raises(ValidationError):
        await collections.create_collection({"owner_user_id": "42", "title": "   "})
    with pytest.raises(MissingFieldError):
        await collections.create_collection({"owner_user_id": "42"})


async def test_membership_is_ordered_and_paged(collections, make_item):
    c = await collections.create_collection({"owner_user_id": "42", "title": "Mix"})
    a = await make_item()
    b = await make_item()
    d = await make_item()
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": a.media_id, "position": 1})
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": b.media_id, "position": 5})
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": d.media_id, "position": 1})

    first = await collections.list_collection({"collection_id": c.collection_id, "limit": 2})
    assert [(i.media_id, i.position) for i in first.items] == [(b.media_id, 5), (d.media_id, 1)]
    rest = await collections.list_collection({"collection_id": c.collection_id, "limit": 2, "cursor": first.next_cursor})
    assert [i.media_id for i in rest.items] == [a.media_id]
    assert rest.next_cursor is None


async def test_re_adding_moves_the_member(collections, make_item, session):
    c = await collections.create_collection({"owner_user_id": "42", "title": "Mix"})
    m = await make_item()
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": m.media_id, "position": 1})
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": m.media_id, "position": 9})
    page = await collections.list_collection({"collection_id": c.collection_id})
    assert [(i.media_id, i.position) for i in page.items] == [(m.media_id, 9)]


async def test_add_requires_live_collection_and_media(collections, service, make_item):
    c = await collections.create_collection({"owner_user_id": "42", "title": "Mix"})
    m = await make_item()
    with pytest.raises(NotFoundError):
        await collections.add_to_collection({"collection_id": "c-9999", "media_id": m.media_id})

    await service.soft_delete({"media_id": m.media_id, "expected_version": 1})
    with pytest.raises(NotFoundError):
        await collections.add_to_collection({"collection_id": c.collection_id, "media_id": m.media_id})


async def test_remove_reports_whether_anything_was_removed(collections, make_item, service):
    c = await collections.create_collection({"owner_user_id": "42", "title": "Mix"})
    m = await make_item()
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": m.media_id})

    assert (await collections.remove_from_collection({"collection_id": c.collection_id, "media_id": m.media_id})).removed
    again = await collections.remove_from_collection({"collection_id": c.collection_id, "media_id": m.media_id})
    assert again.removed is False

    actions = [a.action for a in await service.list_audit({"media_id": m.media_id})]
    assert actions == ["add", "collection_add", "collection_remove", "collection_remove"]


async def test_members_hidden_after_soft_delete_and_dropped_on_purge(collections, service, make_item, session):
    c = await collections.create_collection({"owner_user_id": "42", "title": "Mix"})
    m = await make_item()
    await collections.add_to_collection({"collection_id": c.collection_id, "media_id": m.media_id})

    await service.soft_delete({"media_id": m.media_id, "expected_version": 1})
    assert (await collections.list_collection({"collection_id": c.collection_id})).items == []
    assert await CollectionRepository(session).get_member(c.collection_id, m.media_id) is not None

    await service.hard_delete({"media_id": m.media_id})
    assert await CollectionRepository(session).get_member(c.collection_id, m.media_id) is None
