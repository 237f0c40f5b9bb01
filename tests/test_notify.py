from unittest import mock

import requests

from autoredeem.notify import DiscordNotifier, LogNotifier, build_notifier

from .helpers import CODE, OTHER_CODE, make_response

WEBHOOK = "https://discord.example.test/api/webhooks/1/abc"


def test_send_embed_payload():
    http = mock.Mock()
    http.post.return_value = make_response(204)
    notifier = DiscordNotifier(WEBHOOK, http=http)

    assert notifier.notify("Auto-Redeem", "Starting redemption of 2 SHiFT codes...")

    url = http.post.call_args.args[0]
    embed = http.post.call_args.kwargs["json"]["embeds"][0]
    assert url == WEBHOOK
    assert embed["title"] == "Auto-Redeem"
    assert embed["description"] == "Starting redemption of 2 SHiFT codes..."
    assert "timestamp" in embed


def test_send_embed_failures_return_false():
    http = mock.Mock()
    notifier = DiscordNotifier(WEBHOOK, http=http)

    http.post.return_value = make_response(400)
    assert not notifier.notify("title", "body")

    http.post.side_effect = requests.ConnectionError("offline")
    assert not notifier.notify("title", "body")


def test_codes_redeemed_report_lists_successes_only():
    http = mock.Mock()
    http.post.return_value = make_response(204)
    notifier = DiscordNotifier(WEBHOOK, http=http)

    results = [
        {"code": CODE, "success": True, "message": "Redeemed on: Borderlands 4 (steam)"},
        {"code": OTHER_CODE, "success": False, "message": "Invalid code"},
    ]
    assert notifier.codes_redeemed_report(results)

    embed = http.post.call_args.kwargs["json"]["embeds"][0]
    assert embed["description"] == "Successfully redeemed 1 code"
    assert [f["name"] for f in embed["fields"]] == [f"`{CODE}`"]


def test_codes_redeemed_report_skips_when_nothing_redeemed():
    http = mock.Mock()
    notifier = DiscordNotifier(WEBHOOK, http=http)

    assert not notifier.codes_redeemed_report([{"code": CODE, "success": False, "message": "x"}])
    http.post.assert_not_called()


def test_authentication_failed_truncates_details():
    http = mock.Mock()
    http.post.return_value = make_response(204)
    notifier = DiscordNotifier(WEBHOOK, http=http)

    notifier.authentication_failed("x" * 1000)

    fields = http.post.call_args.kwargs["json"]["embeds"][0]["fields"]
    assert len(fields[1]["value"]) < 520


def test_build_notifier():
    assert isinstance(build_notifier(WEBHOOK), DiscordNotifier)
    assert isinstance(build_notifier(""), LogNotifier)
    assert LogNotifier().notify("title", "body")
