"""Pytest configuration for the slm compiler tests."""

import pytest

from slm_app import create_app


@pytest.fixture
def app():
    return create_app({"TESTING": True})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def write_source(tmp_path):
    """Write a source file into tmp_path and return its path."""

    def write(code, name="prog.slm"):
        path = tmp_path / name
        path.write_text(code, encoding="utf-8")
        return path

    return write
