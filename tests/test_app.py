from __future__ import annotations

import re
from pathlib import Path

import pytest

import donorflow_app
from donorflow.i18n import LOCALES, get_messages
from donorflow.store import DonorFlowStore

APP_SOURCE = Path(donorflow_app.__file__).read_text(encoding="utf-8")
MESSAGE_KEY = re.compile(r"""_t\(\s*["']([\w.]+)["']""")


def _lookup(messages: dict, key: str) -> object:
    node: object = messages
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def test_app_uses_message_keys() -> None:
    keys = set(MESSAGE_KEY.findall(APP_SOURCE))

    assert {"ui.actions.createMember", "ui.notices.settingsSaved", "ui.detail.sponsorsWithoutDonations"} <= keys
    assert '"First Name *"' not in APP_SOURCE
    assert '"Record Donation"' not in APP_SOURCE


@pytest.mark.parametrize("locale", LOCALES)
def test_every_app_message_key_is_translated(locale) -> None:  # type: ignore[no-untyped-def]
    messages = get_messages(locale)

    missing = sorted(key for key in set(MESSAGE_KEY.findall(APP_SOURCE)) if not isinstance(_lookup(messages, key), str))

    assert missing == []


def test_hero_escapes_organization_name(tmp_path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    store = DonorFlowStore(tmp_path / "donorflow_app.db")
    store.init_db()
    store.update_settings({"organizationName": "<img src=x onerror=alert(1)> & Co"})
    rendered: list[str] = []
    monkeypatch.setattr(donorflow_app, "STORE", store)
    monkeypatch.setattr(donorflow_app, "_locale", lambda: "de")
    monkeypatch.setattr(donorflow_app.st, "markdown", lambda body, **kwargs: rendered.append(body))

    donorflow_app._hero()

    assert "&lt;img src=x onerror=alert(1)&gt; &amp; Co" in rendered[0]
    assert "<img" not in rendered[0]
    assert "Gönnerverwaltung" in rendered[0]
