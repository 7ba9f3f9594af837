import json

import httpx
import pytest

from src.plugin.admin import (
    META_GOOD_ID,
    META_PRICING,
    META_SECRET,
    OPTION_AD_BLOCKER_DETECTION,
    OPTION_API,
)
from src.provider import ApiError, BatchResponse

PAID_FORM = {"satoshipay_pricing_enabled": "1", "satoshipay_pricing_satoshi": "8000"}


def test_save_post_creates_good_and_stores_remote_id(db, plugin, provider, credentials):
    post_id = db.create_post("Paid article", "Body", post_status="publish")

    plugin.on_save_post(post_id, PAID_FORM)

    [call] = provider.calls("POST", "/goods")
    assert call.body["goodId"] == post_id
    assert call.body["price"] == 8000
    assert call.body["title"] == "Paid article"
    assert call.body["url"] == f"https://blog.example/?p={post_id}"
    assert call.body["sharedSecret"] == db.get_post_meta(post_id, META_SECRET)
    assert call.body["spmeta"] == '{"adblock":false}'

    assert db.get_post_meta(post_id, META_GOOD_ID) == "good-1"
    assert db.get_post_meta(post_id, META_PRICING) == {"enabled": True, "satoshi": 8000}


def test_second_save_updates_existing_good(db, plugin, provider, credentials):
    post_id = db.create_post("Paid article", post_status="publish")
    plugin.on_save_post(post_id, PAID_FORM)
    secret = db.get_post_meta(post_id, META_SECRET)

    plugin.on_save_post(post_id, {"satoshipay_pricing_satoshi": "9000"})

    [call] = provider.calls("PUT", "/goods/good-1")
    assert call.body["price"] == 9000
    assert call.body["sharedSecret"] == secret
    assert len(provider.calls("POST", "/goods")) == 1


def test_save_without_credentials_stores_pricing_but_skips_api(db, plugin, provider):
    post_id = db.create_post("Paid article", post_status="publish")

    plugin.on_save_post(post_id, PAID_FORM)

    assert provider.recorded == []
    assert db.get_post_meta(post_id, META_PRICING) == {"enabled": True, "satoshi": 8000}
    assert db.get_post_meta(post_id, META_SECRET)
    assert db.get_post_meta(post_id, META_GOOD_ID) is None


def test_save_with_rejected_credentials_skips_goods(db, plugin, provider):
    db.update_option(OPTION_API, {"auth_key": "key", "auth_secret": "wrong"})
    post_id = db.create_post("Paid article", post_status="publish")

    plugin.on_save_post(post_id, PAID_FORM)

    assert [c.path for c in provider.recorded] == ["/permissions"]
    assert db.get_post_meta(post_id, META_GOOD_ID) is None


def test_free_post_without_ad_blocker_pricing_is_not_synced(db, plugin, provider, credentials):
    post_id = db.create_post("Free article", post_status="publish")

    plugin.on_save_post(post_id, {})

    assert provider.calls() == []
    assert db.get_post_meta(post_id, META_PRICING) == {"enabled": False}


def test_free_post_falls_back_to_ad_blocker_pricing(db, plugin, provider, credentials):
    db.update_option(OPTION_AD_BLOCKER_DETECTION, {"enabled": 1, "price": 300})
    post_id = db.create_post("Free article", post_status="publish")

    plugin.on_save_post(post_id, {})

    [call] = provider.calls("POST", "/goods")
    assert call.body["price"] == 300
    assert json.loads(call.body["spmeta"]) == {"adblock": True}


def test_ad_blocker_fallback_ignored_when_feature_is_off(db, config, plugin, provider, credentials):
    config.provider.use_ad_blocker_detection = False
    db.update_option(OPTION_AD_BLOCKER_DETECTION, {"enabled": 1, "price": 300})
    post_id = db.create_post("Free article", post_status="publish")

    plugin.on_save_post(post_id, {})

    assert provider.calls() == []


@pytest.mark.parametrize("post_type,post_status", [("post", "auto-draft"), ("revision", "inherit")])
def test_auto_drafts_and_revisions_are_ignored(db, plugin, provider, credentials, post_type, post_status):
    post_id = db.create_post("Draft", post_type=post_type, post_status=post_status)

    plugin.on_save_post(post_id, PAID_FORM)

    assert provider.recorded == []
    assert db.get_post_meta(post_id, META_SECRET) is None


def test_api_error_on_save_becomes_notice(db, plugin, provider, credentials):
    provider.failures[("POST", "/goods")] = (500, {"name": "InternalError", "message": "boom"})
    post_id = db.create_post("Paid article", post_status="publish")

    plugin.on_save_post(post_id, PAID_FORM)

    assert db.get_post_meta(post_id, META_GOOD_ID) is None
    [notice] = plugin.notices.pop(post_id=post_id)
    assert notice.code == "api_request_failed"
    assert "InternalError / boom" in notice.message
    assert "HTTP status code 500" in notice.message


def test_delete_removes_remote_good_before_post(db, plugin, provider, credentials):
    post_id = db.create_post("Paid article", post_status="publish")
    plugin.on_save_post(post_id, PAID_FORM)

    post_present_during_delete = []
    handler = provider.handler

    def spy(request):
        if request.method == "DELETE":
            post_present_during_delete.append(db.get_post(post_id) is not None)
        return handler(request)

    provider.handler = spy

    assert plugin.delete_post(post_id) is True

    assert post_present_during_delete == [True]
    assert [c.path for c in provider.calls("DELETE")] == ["/goods/good-1"]
    assert db.get_post(post_id) is None
    assert db.get_post_meta(post_id, META_SECRET) is None


def test_failed_remote_delete_keeps_post(db, plugin, provider, credentials):
    post_id = db.create_post("Paid article", post_status="publish")
    plugin.on_save_post(post_id, PAID_FORM)
    provider.failures[("DELETE", "/goods/good-1")] = (404, {"message": "Good not found"})

    with pytest.raises(ApiError) as exc_info:
        plugin.delete_post(post_id)

    assert exc_info.value.status_code == 404
    assert db.get_post(post_id) is not None
    assert db.get_post_meta(post_id, META_GOOD_ID) == "good-1"


def test_delete_without_good_makes_no_delete_call(db, plugin, provider, credentials):
    post_id = db.create_post("Free article", post_status="publish")

    assert plugin.delete_post(post_id) is True
    assert provider.calls("DELETE") == []


def test_unreachable_provider_keeps_post_on_delete(db, plugin, provider, credentials):
    post_id = db.create_post("Paid article", post_status="publish")
    plugin.on_save_post(post_id, PAID_FORM)

    def unreachable(request):
        raise httpx.ConnectError("Name or service not known", request=request)

    provider.handler = unreachable

    with pytest.raises(ApiError) as exc_info:
        plugin.delete_post(post_id)

    assert exc_info.value.status_code is None
    assert db.get_post(post_id) is not None
    assert db.get_post_meta(post_id, META_GOOD_ID) == "good-1"


def test_delete_without_credentials_skips_remote_call(db, plugin, provider):
    post_id = db.create_post("Paid article", post_status="publish")
    db.update_post_meta(post_id, META_GOOD_ID, "good-7")

    assert plugin.delete_post(post_id) is True
    assert provider.recorded == []


def test_reconcile_batch_matches_by_secret_only(db, plugin):
    post_ids = [db.create_post(f"Post {i}", post_status="publish") for i in range(3)]
    for i, post_id in enumerate(post_ids):
        db.add_post_meta(post_id, META_SECRET, f"secret-{i}")

    responses = [
        BatchResponse(status=200, body={"id": "remote-2", "secret": "secret-2"}),
        BatchResponse(status=500, body={"id": "remote-x", "secret": "secret-1"}),
        BatchResponse(status=200, body={"id": "remote-0", "secret": "secret-0"}),
        BatchResponse(status=200),
        BatchResponse(status=200, body={"id": "remote-y"}),
        BatchResponse(status=200, body={"id": "remote-z", "secret": "unknown"}),
        BatchResponse(status="bogus", body={"id": "remote-q", "secret": "secret-1"}),
        BatchResponse(status=200, body={"id": None, "secret": "secret-1"}),
    ]

    assert plugin.reconcile_batch(responses) == 2

    assert db.get_post_meta(post_ids[0], META_GOOD_ID) == "remote-0"
    assert db.get_post_meta(post_ids[1], META_GOOD_ID) is None
    assert db.get_post_meta(post_ids[2], META_GOOD_ID) == "remote-2"


def test_update_metadata_batches_free_posts(db, plugin, provider, credentials):
    db.update_option(OPTION_AD_BLOCKER_DETECTION, {"enabled": 1, "price": 250})
    new_post = db.create_post("New", post_status="publish")
    synced_post = db.create_post("Synced", post_type="page", post_status="draft")
    db.update_post_meta(synced_post, META_GOOD_ID, "good-synced")
    paid_post = db.create_post("Paid", post_status="publish")
    db.update_post_meta(paid_post, META_PRICING, {"enabled": True, "satoshi": 8000})
    draft = db.create_post("Auto", post_status="auto-draft")
    revision = db.create_post("Rev", post_type="revision", post_status="inherit")

    plugin.update_metadata()

    for post_id in (new_post, synced_post, paid_post):
        assert db.get_post_meta(post_id, META_SECRET)
    assert db.get_post_meta(draft, META_SECRET) is None
    assert db.get_post_meta(revision, META_SECRET) is None

    [call] = provider.calls("POST", "/batch")
    requests = {r["body"]["goodId"]: r for r in call.body["requests"]}
    assert set(requests) == {new_post, synced_post}
    assert (requests[new_post]["method"], requests[new_post]["path"]) == ("POST", "/goods")
    assert (requests[synced_post]["method"], requests[synced_post]["path"]) == ("PUT", "/goods/good-synced")
    assert requests[new_post]["body"]["price"] == 250
    assert requests[new_post]["body"]["spmeta"] == {"adblock": True, "homeUrl": "https://blog.example"}

    assert db.get_post_meta(new_post, META_GOOD_ID) == f"batch-{new_post}"
    assert db.get_post_meta(synced_post, META_GOOD_ID) == "good-synced"
    assert db.get_post_meta(paid_post, META_GOOD_ID) is None


def test_update_provider_metadata_requires_enabled_ad_blocker_pricing(db, plugin, provider, credentials):
    db.create_post("Free", post_status="publish")
    db.update_option(OPTION_AD_BLOCKER_DETECTION, {"enabled": 0})

    assert plugin.update_provider_metadata() == 0
    assert provider.calls() == []


def test_batch_failure_becomes_site_notice(db, plugin, provider, credentials):
    db.update_option(OPTION_AD_BLOCKER_DETECTION, {"enabled": 1, "price": 250})
    db.create_post("Free", post_status="publish")
    provider.failures[("POST", "/batch")] = (503, {"message": "maintenance"})

    assert plugin.update_provider_metadata() == 0

    [notice] = plugin.notices.pop()
    assert notice.code == "api_request_failed"
    assert "maintenance" in notice.message


def test_ad_blocker_settings_change_triggers_batch(db, plugin, provider, credentials):
    db.create_post("Free", post_status="publish")

    errors = plugin.update_ad_blocker_detection_settings({"enabled": "1", "price": "250"})

    assert errors == []
    assert len(provider.calls("POST", "/batch")) == 1

    # Unchanged settings do not resync
    plugin.update_ad_blocker_detection_settings({"enabled": "1", "price": "250"})
    assert len(provider.calls("POST", "/batch")) == 1


def test_ad_blocker_settings_change_ignored_when_feature_is_off(db, config, plugin, provider, credentials):
    config.provider.use_ad_blocker_detection = False
    db.create_post("Free", post_status="publish")

    plugin.update_ad_blocker_detection_settings({"enabled": "1", "price": "250"})

    assert provider.calls("POST", "/batch") == []
    assert db.get_option(OPTION_AD_BLOCKER_DETECTION) == {"enabled": 1, "price": 250}


def test_invalid_new_credentials_are_not_saved(db, plugin, provider, credentials):
    errors = plugin.update_api_settings({"auth_key": "key", "auth_secret": "wrong"})

    assert [e.code for e in errors] == ["auth_validcredentials"]
    assert db.get_option(OPTION_API) == credentials


def test_valid_new_credentials_are_saved_and_secrets_added(db, plugin, provider):
    post_id = db.create_post("Old post", post_status="publish")

    errors = plugin.update_api_settings({"auth_key": "key", "auth_secret": "secret"})

    assert errors == []
    assert db.get_option(OPTION_API) == {"auth_key": "key", "auth_secret": "secret"}
    assert db.get_post_meta(post_id, META_SECRET)


def test_valid_credentials_cache(db, plugin, provider, credentials):
    assert plugin.valid_credentials() is True
    assert plugin.valid_credentials(use_cache=True) is True

    assert len(provider.calls(path="/permissions")) == 1


def test_set_pricing_returns_stored_pricing(db, plugin, provider, credentials):
    post_id = db.create_post("Paid article", post_status="publish")

    result = plugin.set_pricing(post_id, PAID_FORM)

    assert result == {"post_id": post_id, "satoshipay_pricing": {"enabled": True, "satoshi": 8000}}
    with pytest.raises(LookupError):
        plugin.set_pricing(9999, PAID_FORM)


def test_prepare_attachment_adds_price(db, plugin):
    attachment = db.create_post("Photo", post_type="attachment", post_status="inherit")
    db.update_post_meta(attachment, META_PRICING, {"enabled": True, "satoshi": 500})

    assert plugin.prepare_attachment({"id": attachment})["price"] == 500
    assert "price" not in plugin.prepare_attachment({"id": 12345})
    assert plugin.prepare_attachment({"title": "no id"}) == {"title": "no id"}
