import io
from pathlib import Path

from app.adsmanager.db import session_scope
from app.adsmanager.modules.ads.models import Ad
from app.adsmanager.modules.ads.service import validate_ad_payload
from app.adsmanager.modules.campaigns.models import Campaign

from conftest import flashes, form, get_user, login

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


def _campaign(app, email: str = "owner@example.com") -> int:
    with session_scope(app) as s:
        c = Campaign(user_id=get_user(s, email).id, name="Monsoon promo", budget_cents=50000, status="draft")
        s.add(c)
        s.flush()
        return c.id


def _ad_form(**fields) -> dict:
    data = {
        "name": "Hero banner",
        "ad_type": "image",
        "headline": "Rainy day deals",
        "description": "Umbrellas from 5,000 Ks",
        "link_url": "https://shop.example.com",
        "call_to_action": "shop-now",
        "tags": "rain, sale, rain",
    }
    data.update(fields)
    return form(**data)


def _stored_files(app) -> list:
    root = Path(app.config["STORAGE_ROOT"])
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]


def test_validate_ad_payload_media_must_match_type():
    base = {"name": "A", "headline": "H", "description": "D"}
    assert "Image ads cannot have a video." in validate_ad_payload(
        {**base, "ad_type": "image", "video_url": "https://cdn.example.com/v.mp4"}
    )
    assert "Video ads need a video." in validate_ad_payload({**base, "ad_type": "video"})
    assert "Provide either an image or a video, not both." in validate_ad_payload(
        {**base, "ad_type": "image", "image_url": "/media/a/1/x.png", "video_url": "/media/b/1/y.mp4"}
    )
    assert "Link must start with http:// or https://." in validate_ad_payload(
        {**base, "ad_type": "image", "image_url": "https://cdn.example.com/x.png", "link_url": "javascript:alert(1)"}
    )
    assert validate_ad_payload({**base, "ad_type": "image", "image_url": "https://cdn.example.com/x.png"}) == []


def test_create_image_ad_with_upload(client):
    login(client)
    app = client.application
    cid = _campaign(app)

    r = client.post(
        f"/campaigns/{cid}/ads/new",
        data={**_ad_form(), "media_file": (io.BytesIO(PNG), "banner.png")},
        content_type="multipart/form-data",
        follow_redirects=False,
    )
    assert r.status_code == 302

    with session_scope(app) as s:
        ad = s.query(Ad).filter(Ad.campaign_id == cid).one()
        owner_id = get_user(s, "owner@example.com").id
        assert ad.ad_type == "image"
        assert ad.video_url is None
        assert ad.image_url.startswith(f"/media/campaign-images/{owner_id}/")
        assert ad.image_url.endswith(".png")
        assert ad.performance_data["tags"] == ["rain", "sale"]
        assert ad.performance_data["call_to_action"] == "shop-now"
        image_url, ad_id = ad.image_url, ad.id

    r = client.get(image_url)
    assert r.status_code == 200
    assert r.data == PNG

    r = client.get(f"/campaigns/{cid}/ads/{ad_id}")
    assert r.status_code == 200


def test_wrong_media_kind_is_rejected_before_storage(client):
    login(client)
    app = client.application
    cid = _campaign(app)

    r = client.post(
        f"/campaigns/{cid}/ads/new",
        data={**_ad_form(), "media_file": (io.BytesIO(b"not a video"), "clip.mp4")},
        content_type="multipart/form-data",
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert any(m.startswith("Unsupported file type") for m in flashes(client))
    assert _stored_files(app) == []

    with session_scope(app) as s:
        assert s.query(Ad).count() == 0


def test_invalid_ad_discards_uploaded_media(client):
    login(client)
    app = client.application
    cid = _campaign(app)

    r = client.post(
        f"/campaigns/{cid}/ads/new",
        data={**_ad_form(headline=""), "media_file": (io.BytesIO(PNG), "banner.png")},
        content_type="multipart/form-data",
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "Headline is required." in flashes(client)
    assert _stored_files(app) == []

    with session_scope(app) as s:
        assert s.query(Ad).count() == 0


def test_ad_edit_toggle_and_delete(client):
    login(client)
    app = client.application
    cid = _campaign(app)
    client.post(
        f"/campaigns/{cid}/ads/new",
        data=_ad_form(image_url="https://cdn.example.com/banner.png"),
        follow_redirects=False,
    )
    with session_scope(app) as s:
        ad_id = s.query(Ad).filter(Ad.campaign_id == cid).one().id

    r = client.post(
        f"/campaigns/{cid}/ads/{ad_id}/edit",
        data=_ad_form(ad_type="video", headline="Dry season deals", image_url="https://cdn.example.com/b2.png"),
        follow_redirects=False,
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        ad = s.get(Ad, ad_id)
        assert ad.headline == "Dry season deals"
        # Type is fixed once created
        assert ad.ad_type == "image"
        assert ad.image_url == "https://cdn.example.com/b2.png"

    client.post(f"/campaigns/{cid}/ads/{ad_id}/toggle", data=form(), follow_redirects=False)
    with session_scope(app) as s:
        assert s.get(Ad, ad_id).status == "active"

    r = client.post(f"/campaigns/{cid}/ads/{ad_id}/delete", data=form(), follow_redirects=False)
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(Ad, ad_id) is None


def test_cannot_add_ad_to_someone_elses_campaign(client):
    cid = _campaign(client.application, "other@example.com")
    login(client)
    r = client.post(
        f"/campaigns/{cid}/ads/new",
        data=_ad_form(image_url="https://cdn.example.com/banner.png"),
        follow_redirects=False,
    )
    assert r.status_code == 404
    with session_scope(client.application) as s:
        assert s.query(Ad).count() == 0


def test_deleting_campaign_removes_uploaded_creatives(client):
    login(client)
    app = client.application
    cid = _campaign(app)

    client.post(
        f"/campaigns/{cid}/ads/new",
        data={**_ad_form(), "media_file": (io.BytesIO(PNG), "banner.png")},
        content_type="multipart/form-data",
        follow_redirects=False,
    )
    client.post(
        f"/campaigns/{cid}/ads/new",
        data=_ad_form(name="Pasted", image_url="https://cdn.example.com/banner.png"),
        follow_redirects=False,
    )
    assert len(_stored_files(app)) == 1

    r = client.post(f"/campaigns/{cid}/delete", data=form(), follow_redirects=False)
    assert r.status_code == 302
    assert _stored_files(app) == []
    with session_scope(app) as s:
        assert s.query(Ad).filter(Ad.campaign_id == cid).count() == 0
