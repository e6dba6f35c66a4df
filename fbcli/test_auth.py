"""
Tests for the login state machine and the Messenger PIN handler.
"""
import asyncio
import sys

import pytest

from .auth import (
    EMAIL_SELECTOR,
    FACEBOOK_URL,
    LOGGED_IN_SELECTOR,
    LOGIN_URL,
    LOGOUT_URL,
    PASSWORD_SELECTOR,
    SUBMIT_SELECTOR,
    AuthManager,
    is_challenge_url,
    looks_authenticated,
)
from .challenge import PIN_SUBMIT_SELECTOR, PinChallengeHandler, PinOutcome
from .conftest import FakeElement
from .errors import ChallengeRequired, ConfigurationError, ErrorKind, LoginFailed, LoginFormNotFound


def login_form(page, landing_url=None):
    """Register a login form whose submit button lands on ``landing_url``."""
    def submit():
        if landing_url:
            page.url = landing_url

    email = FakeElement()
    password = FakeElement()
    page.add(EMAIL_SELECTOR, email)
    page.add(PASSWORD_SELECTOR, password)
    page.add(SUBMIT_SELECTOR, FakeElement(on_click=submit))
    return email, password


def test_url_helpers():
    assert is_challenge_url("https://www.facebook.com/checkpoint/?next=1")
    assert is_challenge_url("https://www.facebook.com/two_step_verification/two_factor/")
    assert not is_challenge_url("https://www.facebook.com/")
    assert looks_authenticated("https://www.facebook.com/marketplace/")
    assert not looks_authenticated("https://www.facebook.com/login/?next")
    assert not looks_authenticated("about:blank")


def test_missing_credentials_fail_before_navigation(config, browser, page):
    config.email = ""
    config.password = ""
    auth = AuthManager(config, browser)

    with pytest.raises(ConfigurationError) as exc:
        asyncio.run(auth.ensure_logged_in())

    assert exc.value.kind is ErrorKind.CONFIGURATION
    assert page.visited == []
    assert browser.launches == 0


def test_existing_session_skips_login(config, browser, logged_in_page):
    auth = AuthManager(config, browser)
    asyncio.run(auth.ensure_logged_in())

    assert auth.is_authenticated
    assert logged_in_page.visited == [FACEBOOK_URL]


def test_ensure_logged_in_is_cached(config, browser, logged_in_page):
    auth = AuthManager(config, browser)

    async def run():
        await auth.ensure_logged_in()
        await auth.ensure_logged_in()

    asyncio.run(run())
    assert logged_in_page.visited == [FACEBOOK_URL]


def test_login_success_saves_cookies(config, browser, page):
    email, password = login_form(page, landing_url="https://www.facebook.com/?sk=welcome")
    page.context._cookies = [{"name": "c_user", "value": "1000123", "domain": ".facebook.com", "path": "/"}]
    auth = AuthManager(config, browser)

    asyncio.run(auth.ensure_logged_in())

    assert auth.is_authenticated
    assert email.value == "user@example.com"
    assert password.value == "hunter2"
    assert page.visited == [FACEBOOK_URL, LOGIN_URL]
    assert browser.session_store.load()[0]["name"] == "c_user"


def test_login_checkpoint_raises_challenge(config, browser, page):
    login_form(page, landing_url="https://www.facebook.com/checkpoint/?next")
    auth = AuthManager(config, browser)

    with pytest.raises(ChallengeRequired) as exc:
        asyncio.run(auth.ensure_logged_in())

    assert "--headed" in str(exc.value)
    assert not auth.is_authenticated


def test_login_rejected(config, browser, page):
    # Submit leaves the page on /login
    login_form(page)
    auth = AuthManager(config, browser)

    with pytest.raises(LoginFailed):
        asyncio.run(auth.ensure_logged_in())
    assert not auth.is_authenticated


def test_login_form_not_found(config, browser, page):
    auth = AuthManager(config, browser)

    with pytest.raises(LoginFormNotFound):
        asyncio.run(auth.ensure_logged_in())


def test_login_form_missing_but_authenticated(config, browser, page):
    page.redirects[LOGIN_URL] = "https://www.facebook.com/home.php"
    auth = AuthManager(config, browser)

    asyncio.run(auth.ensure_logged_in())
    assert auth.is_authenticated


def test_logout_clears_flag(config, browser, logged_in_page):
    auth = AuthManager(config, browser)

    async def run():
        await auth.ensure_logged_in()
        await auth.logout()

    asyncio.run(run())
    assert not auth.is_authenticated
    assert logged_in_page.visited[-1] == LOGOUT_URL


def test_logout_without_browser(config, browser, page):
    auth = AuthManager(config, browser)
    asyncio.run(auth.logout())
    assert page.visited == []
    assert not auth.is_authenticated


def test_login_incomplete_form_raises_form_not_found(config, browser, page):
    # Email and password present, no submit button
    page.add(EMAIL_SELECTOR, FakeElement())
    page.add(PASSWORD_SELECTOR, FakeElement())
    auth = AuthManager(config, browser)

    with pytest.raises(LoginFormNotFound):
        asyncio.run(auth.ensure_logged_in())
    assert not auth.is_authenticated


def test_login_form_fill_error_raises_form_not_found(config, browser, page):
    page.add(EMAIL_SELECTOR, FakeElement(fill_error=True))
    page.add(PASSWORD_SELECTOR, FakeElement())
    page.add(SUBMIT_SELECTOR, FakeElement())
    auth = AuthManager(config, browser)

    with pytest.raises(LoginFormNotFound) as exc:
        asyncio.run(auth.ensure_logged_in())
    assert exc.value.kind is ErrorKind.LOGIN_FORM_NOT_FOUND


class FakeStdin:
    def __init__(self, tty):
        self.tty = tty

    def isatty(self):
        return self.tty


def test_headed_challenge_cleared_by_user(config, browser, page, monkeypatch):
    config.headless = False
    login_form(page, landing_url="https://www.facebook.com/checkpoint/?next")
    prompts = []

    def press_enter(*args):
        # The user clears the checkpoint and lands on the feed
        prompts.append(args)
        page.url = "https://www.facebook.com/?sk=h_chr"
        page.elements.pop(PASSWORD_SELECTOR)
        page.add(LOGGED_IN_SELECTOR, FakeElement())
        return ""

    monkeypatch.setattr(sys, "stdin", FakeStdin(tty=True))
    monkeypatch.setattr("builtins.input", press_enter)
    auth = AuthManager(config, browser)

    asyncio.run(auth.ensure_logged_in())

    assert auth.is_authenticated
    assert len(prompts) == 1
    assert browser.session_store.exists()


def test_headed_challenge_not_cleared(config, browser, page, monkeypatch):
    config.headless = False
    login_form(page, landing_url="https://www.facebook.com/checkpoint/?next")
    monkeypatch.setattr(sys, "stdin", FakeStdin(tty=True))
    monkeypatch.setattr("builtins.input", lambda *args: "")
    auth = AuthManager(config, browser)

    with pytest.raises(ChallengeRequired):
        asyncio.run(auth.ensure_logged_in())
    assert not auth.is_authenticated


def test_headed_challenge_without_terminal(config, browser, page, monkeypatch):
    config.headless = False
    login_form(page, landing_url="https://www.facebook.com/checkpoint/?next")

    def no_prompt(*args):
        raise AssertionError("input() must not be called without a terminal")

    monkeypatch.setattr(sys, "stdin", FakeStdin(tty=False))
    monkeypatch.setattr("builtins.input", no_prompt)
    auth = AuthManager(config, browser)

    with pytest.raises(ChallengeRequired):
        asyncio.run(auth.ensure_logged_in())


# PIN challenge

def run_pin(config, browser):
    handler = PinChallengeHandler(config, browser)

    async def run():
        await browser.launch()
        return await handler.handle()

    return asyncio.run(run())


def test_pin_filled_and_submitted(config, browser, page):
    pin_input = FakeElement()
    submit = FakeElement(text="OK")
    page.add("input[type='tel']", pin_input)
    page.add(PIN_SUBMIT_SELECTOR, submit)

    assert run_pin(config, browser) is PinOutcome.RESOLVED
    assert pin_input.value == "123456"
    assert submit.clicks == 1
    assert page.waited_ms == [config.pin_dialog_wait_ms]


def test_pin_submitted_with_enter(config, browser, page):
    pin_input = FakeElement()
    page.add("input[placeholder*='PIN' i]", pin_input)

    assert run_pin(config, browser) is PinOutcome.RESOLVED
    assert pin_input.pressed == ["Enter"]


def test_pin_skips_hidden_inputs(config, browser, page):
    hidden = FakeElement(visible=False)
    visible = FakeElement()
    page.add("input[inputmode='numeric']", hidden, visible)

    assert run_pin(config, browser) is PinOutcome.RESOLVED
    assert hidden.value == ""
    assert visible.value == "123456"


def test_pin_without_dialog(config, browser, page):
    page.add("input[type='tel']", FakeElement(visible=False))
    assert run_pin(config, browser) is PinOutcome.UNRESOLVED


def test_pin_not_configured(config, browser, page):
    config.pin = ""
    pin_input = FakeElement()
    page.add("input[type='tel']", pin_input)

    assert run_pin(config, browser) is PinOutcome.UNRESOLVED
    assert pin_input.value == ""
