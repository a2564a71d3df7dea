import json
import logging
from urllib.parse import quote

import pytest
from starlette.responses import Response

from todo_app.auth.flash import FlashLevel, FlashMessage, FlashNotifier, FlashSigner


@pytest.fixture()
def signer() -> FlashSigner:
    return FlashSigner("test-key")


def _cookie_value(message: str, tag: str) -> str:
    return quote(json.dumps({"message": message, "tag": tag}), safe="")


def test_signed_message_round_trip(signer: FlashSigner) -> None:
    assert signer.decode(signer.encode("Incorrect Credentials")) == "Incorrect Credentials"


def test_encoded_value_is_cookie_safe(signer: FlashSigner) -> None:
    value = signer.encode('Quotes "and" spaces; commas, too')

    assert all(ch.isalnum() or ch in "%-._~" for ch in value)


def test_altered_text_with_original_tag_is_rejected(signer: FlashSigner, caplog) -> None:
    forged = _cookie_value("Visit evil.example", signer.tag("Incorrect Credentials"))

    with caplog.at_level(logging.WARNING, logger="todo_app.auth.flash"):
        assert signer.decode(forged) is None
    assert "invalid tag" in caplog.text


def test_tag_from_another_key_is_rejected(signer: FlashSigner) -> None:
    other = FlashSigner("other-key")

    assert signer.decode(other.encode("Incorrect Credentials")) is None


@pytest.mark.parametrize(
    "value",
    [
        "garbage",
        quote("[1, 2]"),
        quote('{"message": "x"}'),
        "[" * 3000,
        quote(json.dumps({"message": "x" * 5000, "tag": "00"})),
    ],
)
def test_malformed_cookie_is_discarded(signer: FlashSigner, value: str) -> None:
    assert signer.decode(value) is None


def test_empty_key_is_refused() -> None:
    with pytest.raises(RuntimeError):
        FlashSigner("")


def test_notifier_reads_and_clears(signer: FlashSigner) -> None:
    notifier = FlashNotifier(signer)
    outgoing = Response()
    notifier.error(outgoing, "Incorrect Credentials")
    notifier.success(outgoing, "Account created")
    set_cookies = outgoing.headers.getlist("set-cookie")
    assert any(c.startswith("error_flash=") for c in set_cookies)
    assert any(c.startswith("success_flash=") for c in set_cookies)

    cookies = {
        "error_flash": signer.encode("Incorrect Credentials"),
        "success_flash": _cookie_value("forged", "00"),
    }
    assert notifier.read(cookies) == [FlashMessage(FlashLevel.ERROR, "Incorrect Credentials")]

    reply = Response()
    notifier.clear(cookies, reply)
    cleared = reply.headers.getlist("set-cookie")
    assert len(cleared) == 2
    assert all("Max-Age=0" in c for c in cleared)


def test_clear_without_flash_cookies_sets_nothing(signer: FlashSigner) -> None:
    reply = Response()
    FlashNotifier(signer).clear({"todo_session": "abc"}, reply)

    assert "set-cookie" not in reply.headers
