import pytest

from app.core.errors import UnknownFieldError, ValidationError


@pytest.fixture
def publish_item(service, make_item, clock):
    async def _publish(**fields):
        payload = {"asset_url": "https://x/a.mp3", "duration_seconds": 90, "visibility": "public"}
        payload.update(fields)
        out = await make_item(**payload)
        res = await service.handle_publish_media_item({"media_id": out.media_id, "expected_version": 1})
        clock.advance(minutes=1)
        return res
    return _publish


async def test_public_listing_pages_newest_first(service, publish_item):
    ids = [(await publish_item()).media_id for _ in range(3)]

    first = await service.list_public({"limit": 2})
    assert [i.media_id for i in first.items] == [ids[2], ids[1]]
    assert first.next_cursor

    second = await service.list_public({"limit": 2, "cursor": first.next_cursor})
    assert [i.media_id for i in second.items] == [ids[0]]
    assert second.next_cursor is None


async def test_same_date_ties_break_on_id(service, make_item):
    ids = [(await make_item()).media_id for _ in range(3)]
    seen = []
    cursor = None
    while True:
        payload = {"owner_user_id": "42", "limit": 1}
        if cursor:
            payload["cursor"] = cursor
        page = await service.list_by_owner(payload)
        seen += [i.media_id for i in page.items]
        cursor = page.next_cursor
        if not cursor:
            break
    assert seen == sorted(ids, reverse=True)


async def test_public_listing_excludes_private_and_unpublished(service, make_item, publish_item):
    public = await publish_item()
    await publish_item(visibility="private")
    await make_item(visibility="public")
    page = await service.list_public({})
    assert [i.media_id for i in page.items] == [public.media_id]


async def test_owner_listing_filters(service, make_item):
    audio = await make_item(duration_seconds=30, tags=["live"])
    video = await make_item(media_type="video", duration_seconds=600, tags=["live", "studio"])
    await make_item(owner_user_id="other", media_type="video")

    by_type = await service.list_by_owner({"owner_user_id": "42", "filters": {"media_type": "video"}})
    assert [i.media_id for i in by_type.items] == [video.media_id]

    short = await service.list_by_owner({"owner_user_id": "42", "filters": {"max_duration": 60}})
    assert [i.media_id for i in short.items] == [audio.media_id]

    tagged = await service.list_by_owner({"owner_user_id": "42", "filters": {"tags_all": ["LIVE", "studio"]}})
    assert [i.media_id for i in tagged.items] == [video.media_id]


async def test_unknown_filter_is_rejected(service):
    with pytest.raises(UnknownFieldError):
        await service.list_by_owner({"owner_user_id": "42", "filters": {"colour": "red"}})


async def test_garbage_cursor_is_rejected(service):
    with pytest.raises(ValidationError):
        await service.list_public({"cursor": "not-a-cursor!!"})


async def test_tag_featured_and_coming_soon_listings(service, make_item, publish_item):
    tagged = await make_item(tags=["Jazz"])
    await make_item(tags=["rock"])
    featured = await publish_item(featured=True)
    await make_item(featured=True)
    soon = await make_item(coming_soon=True)

    assert [i.media_id for i in (await service.list_by_tag({"tag": "jazz"})).items] == [tagged.media_id]
    assert [i.media_id for i in (await service.list_featured({})).items] == [featured.media_id]
    assert [i.media_id for i in (await service.list_coming_soon({})).items] == [soon.media_id]


async def test_search_matches_published_title_or_description(service, publish_item, make_item):
    hit = await publish_item(title="Late Night Session")
    desc = await publish_item(title="Other", description="recorded at night")
    await make_item(title="Night draft")
    await publish_item(title="100% cotton")

    page = await service.search({"query": "night"})
    assert {i.media_id for i in page.items} == {hit.media_id, desc.media_id}

    assert (await service.search({"query": "0%"})).items[0].title == "100% cotton"
    assert len((await service.search({"query": "_"})).items) == 0


async def test_listing_skips_soft_deleted(service, make_item):
    keep = await make_item()
    gone = await make_item()
    await service.soft_delete({"media_id": gone.media_id, "expected_version": 1})
    page = await service.list_by_owner({"owner_user_id": "42"})
    assert [i.media_id for i in page.items] == [keep.media_id]
