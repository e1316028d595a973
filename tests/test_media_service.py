from datetime import timedelta

import pytest

from app.core.errors import (
    ConflictError, MissingFieldError, NotFoundError, RuleViolationError,
    StateTransitionError, ValidationError,
)
from app.modules.media.repository import MediaRepository


async def test_create_starts_at_version_one_in_draft(service, make_item, index):
    out = await make_item(tags=["Rock", "rock", "Live"], coperformers=["p-2", "p-1"])
    assert (out.version, out.status, out.indexed) == (1, "draft", True)
    assert index.calls == [("upsert", out.media_id)]

    item = await service.get_by_id({"media_id": out.media_id, "include_tags": True, "include_coperformers": True})
    assert item.visibility == "private"
    assert item.created_by_user_id == "u-1"
    assert item.tags == ["live", "rock"]
    assert item.coperformers == ["p-1", "p-2"]

    audit = await service.list_audit({"media_id": out.media_id})
    assert [a.action for a in audit] == ["add"]


async def test_create_requires_valid_media_type(service):
    with pytest.raises(ValidationError):
        await service.handle_add_media_item({"owner_user_id": "42", "media_type": "podcast"})
    with pytest.raises(MissingFieldError):
        await service.handle_add_media_item({"owner_user_id": "42"})


async def test_new_owner_overrides_owner_on_create(service, make_item):
    out = await make_item(new_owner_user_id="99")
    item = await service.get_by_id({"media_id": out.media_id})
    assert item.owner_user_id == "99"


async def test_concrete_audio_scenario(service, make_item, clock):
    created = await make_item(owner_user_id="42", media_type="audio", title="Track")
    assert created.version == 1 and created.status == "draft"

    attached = await service.attach_primary_asset({
        "media_id": created.media_id,
        "expected_version": 1,
        "asset_url": "https://x/a.mp3",
        "duration_seconds": 120,
    })
    assert attached.version == 2

    published = await service.handle_publish_media_item({"media_id": created.media_id, "expected_version": 2})
    assert published.status == "published"
    assert published.version == 3
    assert published.publish_date == clock.now()

    with pytest.raises(ConflictError) as e:
        await service.handle_publish_media_item({"media_id": created.media_id, "expected_version": 2})
    assert e.value.expected_version == 2
    assert e.value.actual_version == 3


async def test_version_increments_once_per_mutation(service, make_item):
    out = await make_item()
    media_id, version = out.media_id, out.version
    steps = [
        ("set_visibility", {"visibility": "public"}),
        ("set_featured", {"featured": True}),
        ("set_coming_soon", {"coming_soon": "yes"}),
        ("set_tags", {"tags": ["a", "b"]}),
        ("add_tag", {"tag": "C"}),
        ("remove_tag", {"tag": "a"}),
        ("set_coperformers", {"performer_ids": ["p-9"]}),
        ("set_ownership", {"new_owner_user_id": "77"}),
        ("apply_blur_controls", {"blurred_lock": True, "blurred_value_px": 55}),
        ("update_metadata", {"title": "Renamed", "description": "d"}),
    ]
    for n, (op, fields) in enumerate(steps, start=1):
        res = await getattr(service, op)({"media_id": media_id, "expected_version": version, **fields}, actor_user_id="u-2")
        assert res.version == version + 1
        version = res.version
        assert (await service.get_by_id({"media_id": media_id})).version == 1 + n

    item = await service.get_by_id({"media_id": media_id, "include_tags": True, "include_coperformers": True})
    assert item.tags == ["b", "c"]
    assert item.coperformers == ["p-9"]
    assert item.owner_user_id == "77"
    assert item.blurred_value_px == 40
    assert item.updated_by_user_id == "u-2"
    assert len(await service.list_audit({"media_id": media_id})) == 1 + len(steps)


async def test_missing_version_token_is_a_conflict(service, make_item):
    out = await make_item()
    with pytest.raises(ConflictError):
        await service.set_visibility({"media_id": out.media_id, "visibility": "public"})


async def test_unknown_media_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.set_visibility({"media_id": "nope", "expected_version": 1, "visibility": "public"})


async def test_failed_tag_replace_rolls_back_children_and_version(service, make_item, monkeypatch):
    out = await make_item(tags=["keep", "these"])

    async def broken_insert(self, media_id, tags):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(MediaRepository, "insert_tags", broken_insert)
    with pytest.raises(RuntimeError):
        await service.set_tags({"media_id": out.media_id, "expected_version": 1, "tags": ["new"]})
    monkeypatch.undo()

    item = await service.get_by_id({"media_id": out.media_id, "include_tags": True})
    assert item.tags == ["keep", "these"]
    assert item.version == 1
    assert [a.action for a in await service.list_audit({"media_id": out.media_id})] == ["add"]


async def test_video_publish_gated_on_poster(service, make_item, clock):
    out = await make_item(media_type="video", asset_url="https://x/v.mp4", duration_seconds=60)
    with pytest.raises(RuleViolationError) as e:
        await service.handle_publish_media_item({"media_id": out.media_id, "expected_version": 1})
    assert e.value.field == "poster_url"
    assert (await service.get_by_id({"media_id": out.media_id})).status == "draft"

    poster = await service.set_poster({"media_id": out.media_id, "expected_version": 1, "poster_url": "https://x/p.jpg"})
    published = await service.handle_publish_media_item({"media_id": out.media_id, "expected_version": poster.version})
    assert published.status == "published"
    assert published.publish_date is not None


async def test_schedule_requires_future_date(service, make_item, clock):
    out = await make_item(asset_url="https://x/a.mp3", duration_seconds=30)
    with pytest.raises(RuleViolationError) as e:
        await service.handle_schedule_media_item({
            "media_id": out.media_id, "expected_version": 1, "publish_date": clock.now().isoformat(),
        })
    assert e.value.field == "publish_date"

    when = clock.now() + timedelta(hours=24)
    res = await service.handle_schedule_media_item({
        "media_id": out.media_id, "expected_version": 1, "publish_date": when.isoformat(),
    })
    assert res.status == "scheduled"
    assert res.publish_date == when


async def test_cancel_schedule_only_from_scheduled(service, make_item, clock):
    out = await make_item(asset_url="https://x/a.mp3", duration_seconds=30)
    when = (clock.now() + timedelta(days=1)).isoformat()
    scheduled = await service.schedule_publish({"media_id": out.media_id, "expected_version": 1, "publish_date": when})

    cancelled = await service.cancel_schedule({"media_id": out.media_id, "expected_version": scheduled.version})
    assert cancelled.status == "pending_review"

    published = await service.set_status_published({"media_id": out.media_id, "expected_version": cancelled.version})
    with pytest.raises(StateTransitionError) as e:
        await service.cancel_schedule({"media_id": out.media_id, "expected_version": published.version})
    assert e.value.current_status == "published"
    item = await service.get_by_id({"media_id": out.media_id})
    assert (item.status, item.version) == ("published", published.version)


async def test_publish_keeps_existing_publish_date(service, make_item, clock):
    out = await make_item(asset_url="https://x/a.mp3", duration_seconds=30)
    when = clock.now() + timedelta(hours=2)
    s = await service.set_status_scheduled({"media_id": out.media_id, "expected_version": 1, "publish_date": when})
    p = await service.handle_publish_media_item({"media_id": out.media_id, "expected_version": s.version})
    assert p.publish_date == when


async def test_set_status_plain_transitions(service, make_item):
    out = await make_item()
    review = await service.set_status({"media_id": out.media_id, "expected_version": 1, "status": "pending_review"})
    assert review.status == "pending_review"
    archived = await service.set_status({"media_id": out.media_id, "expected_version": 2, "status": "archived"})
    assert archived.status == "archived"

    with pytest.raises(StateTransitionError):
        await service.set_status({"media_id": out.media_id, "expected_version": 3, "status": "pending_review"})
    with pytest.raises(ValidationError):
        await service.set_status({"media_id": out.media_id, "expected_version": 3, "status": "published"})


async def test_set_status_cannot_cancel_a_schedule(service, make_item, clock):
    out = await make_item(asset_url="https://x/a.mp3", duration_seconds=30)
    s = await service.handle_schedule_media_item({
        "media_id": out.media_id, "expected_version": 1,
        "publish_date": (clock.now() + timedelta(days=2)).isoformat(),
    })
    with pytest.raises(StateTransitionError):
        await service.set_status({"media_id": out.media_id, "expected_version": s.version, "status": "pending_review"})


async def test_custom_meta_merge_and_replace(service, make_item):
    out = await make_item(media_meta={"a": 1, "b": 2})
    merged = await service.set_custom_meta({
        "media_id": out.media_id, "expected_version": 1, "media_meta": {"b": 3, "c": 4}, "merge": True,
    })
    assert (await service.get_by_id({"media_id": out.media_id})).media_meta == {"a": 1, "b": 3, "c": 4}

    await service.set_custom_meta({"media_id": out.media_id, "expected_version": merged.version, "media_meta": {"z": 0}})
    assert (await service.get_by_id({"media_id": out.media_id})).media_meta == {"z": 0}


async def test_invalid_poster_is_rejected(service, make_item):
    out = await make_item()
    with pytest.raises(ValidationError):
        await service.set_poster({"media_id": out.media_id, "expected_version": 1, "poster_url": "http://x/p.jpg"})


async def test_update_dispatcher_threads_version(service, make_item):
    out = await make_item()
    res = await service.handle_update_media_item({
        "media_id": out.media_id,
        "expected_version": 1,
        "asset_url": "https://x/a.mp3",
        "title": "New title",
        "tags": ["x"],
        "placeholder_lock": True,
    }, actor_user_id="editor")
    assert res.applied == ["attach_primary_asset", "update_metadata", "set_tags", "apply_blur_controls"]
    assert res.version == 5
    actions = [a.action for a in await service.list_audit({"media_id": out.media_id})]
    assert actions == ["add", "attach_primary_asset", "update", "set_tags", "apply_blur_controls"]


async def test_update_dispatcher_needs_something_to_do(service, make_item):
    out = await make_item()
    with pytest.raises(ValidationError):
        await service.handle_update_media_item({"media_id": out.media_id, "expected_version": 1})


async def test_soft_delete_hides_item_but_keeps_audit(service, make_item, index):
    out = await make_item()
    deleted = await service.soft_delete({"media_id": out.media_id, "expected_version": 1})
    assert deleted.status == "deleted"
    assert index.calls[-1] == ("delete", out.media_id)

    with pytest.raises(NotFoundError):
        await service.get_by_id({"media_id": out.media_id})
    page = await service.list_by_owner({"owner_user_id": "42"})
    assert page.items == []
    actions = [a.action for a in await service.list_audit({"media_id": out.media_id})]
    assert actions == ["add", "soft_delete"]

    with pytest.raises(NotFoundError):
        await service.soft_delete({"media_id": out.media_id, "expected_version": 2})


async def test_hard_delete_removes_everything(service, make_item, session, index):
    out = await make_item(tags=["a"], coperformers=["p"])
    await service.soft_delete({"media_id": out.media_id, "expected_version": 1})

    purged = await service.hard_delete({"media_id": out.media_id})
    assert purged.purged is True
    assert index.calls[-1] == ("delete", out.media_id)

    repo = MediaRepository(session)
    assert await repo.get(out.media_id, include_deleted=True) is None
    assert await repo.list_tags(out.media_id) == []
    assert await repo.list_coperformers(out.media_id) == []
    assert await service.list_audit({"media_id": out.media_id}) == []

    with pytest.raises(NotFoundError):
        await service.hard_delete({"media_id": out.media_id})


async def test_index_failure_does_not_undo_commit(service, make_item, index):
    out = await make_item()
    index.fail = True
    res = await service.set_featured({"media_id": out.media_id, "expected_version": 1, "featured": True})
    assert res.indexed is False
    assert res.version == 2
    item = await service.get_by_id({"media_id": out.media_id})
    assert item.featured is True and item.version == 2

    index.fail = False
    assert (await service.reindex({"media_id": out.media_id})).reindexed is True
    assert index.calls[-1] == ("upsert", out.media_id)


@pytest.mark.parametrize("op,payload", [
    ("set_tags", {"tags": "rock"}),
    ("set_coperformers", {"performer_ids": {"p": 2}}),
])
async def test_non_list_children_are_rejected_without_a_write(service, make_item, op, payload):
    out = await make_item(tags=["keep", "these"], coperformers=["p-1"])
    with pytest.raises(ValidationError):
        await getattr(service, op)({"media_id": out.media_id, "expected_version": 1, **payload})

    item = await service.get_by_id({"media_id": out.media_id, "include_tags": True, "include_coperformers": True})
    assert item.version == 1
    assert item.tags == ["keep", "these"]
    assert item.coperformers == ["p-1"]
    assert [a.action for a in await service.list_audit({"media_id": out.media_id})] == ["add"]


@pytest.mark.parametrize("field,value", [("status", "published"), ("publish_date", "2026-03-01T00:00:00Z")])
async def test_update_dispatcher_refuses_lifecycle_fields(service, make_item, field, value):
    out = await make_item()
    with pytest.raises(ValidationError) as e:
        await service.handle_update_media_item({
            "media_id": out.media_id, "expected_version": 1, "title": "New", field: value,
        })
    assert e.value.details["field"] == field
    item = await service.get_by_id({"media_id": out.media_id})
    assert (item.version, item.title) == (1, "Untitled")
