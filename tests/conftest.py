"""
Shared fixtures: fake Playwright pages, a demo field catalog and a
browser launcher that never starts a real browser.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from quoteflow.executor.context import ContextStack, ExecutionContext
from quoteflow.orchestrator.browser import BrowserSession
from quoteflow.utils.paths import ResolveContext
from quoteflow.utils.schema import FieldCatalog


DEMO_CATALOG = {
    "platform": "demo",
    "fields": [
        {"key": "nom", "domainKey": "subscriber.lastName", "selector": "#nom"},
        {"key": "email", "domainKey": "subscriber.email", "selector": "#email"},
        {"key": "password", "domainKey": "auth.password", "selector": "#password"},
        {"key": "regime", "domainKey": "subscriber.regime", "selector": "#regime",
         "valueMap": {"TNS": "independant", "*": "salarie"}},
        {"key": "cp", "domainKey": "subscriber.postalCode", "selector": "#dept", "adapter": "department_code"},
        {"key": "child_birth", "domainKey": "children.birthDate", "selector": "#child-{i}",
         "dynamicIndex": {"indexBase": 1}},
        {"key": "civilite", "domainKey": "subscriber.civility", "type": "radio-group",
         "options": [{"value": "M", "selector": "#civ-m"}, {"value": "MME", "selector": "#civ-mme"}]},
        {"key": "formule", "domainKey": "product.formula", "selector": "#formule",
         "options": {"open_selector": "#formule-open", "items": [
             {"value": "ECO", "label": "Economique", "option_selector": "#opt-eco"},
             {"value": "PREM", "label": "Premium", "option_selector": "#opt-prem"}]}},
        {"key": "profession", "domainKey": "subscriber.profession", "selector": "#profession",
         "options": {"option_selector_template": "#profession option[value='{value}']"}},
        {"key": "madelin", "domainKey": "subscriber.madelin",
         "metadata": {"toggle": {"click_selector": "#madelin-toggle",
                                 "state_on_selector": "#madelin-toggle.is-on"}}},
        {"key": "newsletter", "domainKey": "prefs.newsletter", "selector": "#newsletter"},
        {"key": "submit", "domainKey": "form.submit", "selector": "button[type=submit]"},
        {"key": "banner", "domainKey": "form.banner", "selector": "#banner"},
    ],
}


def make_fake_page():
    """A MagicMock shaped like a Playwright async Page that records filled values."""
    page = MagicMock(name="page")
    page.dom = {}

    async def evaluate(script, arg=None):
        if isinstance(arg, dict) and "selector" in arg and "value" in arg:
            page.dom[arg["selector"]] = arg["value"]
            return {"success": True, "value": arg["value"]}
        return None

    page.evaluate = AsyncMock(side_effect=evaluate)
    for name in ("goto", "wait_for_selector", "click", "select_option", "is_checked",
                 "screenshot", "wait_for_load_state", "query_selector", "press"):
        setattr(page, name, AsyncMock(name=name))
    page.content = AsyncMock(return_value="<html><body>" + "x" * 200 + "</body></html>")
    page.keyboard.press = AsyncMock()
    page.frames = []

    locator = MagicMock(name="locator")
    for name in ("click", "clear", "press_sequentially", "press", "blur",
                 "scroll_into_view_if_needed"):
        setattr(locator, name, AsyncMock(name=name))
    locator.count = AsyncMock(return_value=0)
    locator.aria_snapshot = AsyncMock(return_value="- main")
    page.locator.return_value = locator
    return page


async def no_pause(ms):
    return None


@pytest.fixture
def catalog():
    return FieldCatalog.model_validate(DEMO_CATALOG)


@pytest.fixture
def page():
    return make_fake_page()


@pytest.fixture
def make_ctx(catalog):
    def factory(page, lead=None, credentials=None):
        return ExecutionContext(
            stack=ContextStack(page),
            resolve=ResolveContext(lead=lead or {}, credentials=credentials or {}, env={}),
            catalog=catalog,
            pause=no_pause,
        )
    return factory


@pytest.fixture
def fake_launcher():
    """Factory: launcher(page) returns an async launcher bound to that fake page."""
    def factory(page):
        async def launch(options, video_dir=None):
            context = MagicMock(name="context")
            context.close = AsyncMock()
            context.tracing.start = AsyncMock()
            context.tracing.stop = AsyncMock()
            context.pages = [page]
            browser = MagicMock(name="browser")
            browser.close = AsyncMock()
            launch.session = BrowserSession(playwright=None, browser=browser, context=context, page=page)
            return launch.session
        launch.session = None
        return launch
    return factory
