from pathlib import Path

import pytest
import streamlit as st
from streamlit.testing.v1 import AppTest

import config

APP_PATH = str(Path(__file__).resolve().parent.parent / "app.py")


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "db.json"))
    monkeypatch.setattr(config, "SEED_PATH", "")
    st.cache_resource.clear()
    at = AppTest.from_file(APP_PATH, default_timeout=30)
    at.session_state["rows"] = [
        {"key": key, "fert_id": None, "amount": amount} for key, amount in (("a", "1"), ("b", "2"), ("c", "3"))
    ]
    return at


def row_amounts(at):
    return [w.value for w in at.text_input if w.key and w.key.startswith("row_amount_")]


def test_delete_first_row_keeps_remaining_values(app):
    app.run()
    assert not app.exception
    assert row_amounts(app) == ["1", "2", "3"]

    app.button(key="row_del_a").click().run()
    assert row_amounts(app) == ["2", "3"]


def test_delete_edited_row_does_not_leak_its_input(app):
    app.run()
    app.text_input(key="row_amount_a").input("9").run()
    assert row_amounts(app) == ["9", "2", "3"]

    app.button(key="row_del_a").click().run()
    assert row_amounts(app) == ["2", "3"]


def test_replaced_rows_show_new_amounts(app):
    app.run()
    app.session_state["rows"] = [{"key": "x", "fert_id": None, "amount": "7.50"}]
    app.run()
    assert row_amounts(app) == ["7.50"]
