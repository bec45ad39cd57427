"""Tests for the slide handler registry."""

import pytest

import handlers
from configuration import DatasourceConfig
from errors import UnknownHandlerError
from handlers import register_handler, registered_handlers, resolve_handler, select_handler_name


@pytest.fixture
def empty_registry(monkeypatch):
    monkeypatch.setattr(handlers, "_HANDLERS", {})


def test_register_and_resolve(empty_registry):
    @register_handler("custom")
    def custom(ctx, datasource):
        return "ran"

    assert resolve_handler("custom") is custom
    assert registered_handlers() == ["custom"]


def test_reregistering_same_function_is_allowed(empty_registry):
    def custom(ctx, datasource):
        pass

    register_handler("custom")(custom)
    register_handler("custom")(custom)
    assert registered_handlers() == ["custom"]


def test_conflicting_registration(empty_registry):
    register_handler("custom")(lambda ctx, ds: None)
    with pytest.raises(ValueError, match="already registered"):
        register_handler("custom")(lambda ctx, ds: None)


def test_unknown_handler_lists_registered(empty_registry):
    register_handler("collection")(lambda ctx, ds: None)
    with pytest.raises(UnknownHandlerError) as excinfo:
        resolve_handler("nope")
    assert str(excinfo.value) == "Unknown slide handler 'nope' (registered: collection)"


def test_unknown_handler_is_a_key_error(empty_registry):
    with pytest.raises(KeyError):
        resolve_handler("nope")


class TestSelectHandlerName:
    def test_custom_function_wins(self):
        ds = DatasourceConfig(sheet_name="Web", custom_function="paginated_table", single_value=True)
        assert select_handler_name(ds) == "paginated_table"

    def test_single_value(self):
        assert select_handler_name(DatasourceConfig(sheet_name="Web", single_value=True)) == "single"

    def test_collection_by_default(self):
        assert select_handler_name(DatasourceConfig(sheet_name="Web")) == "collection"


def test_built_in_handlers_registered_by_slides_report():
    import slides_report  # noqa: F401

    for name in ("collection", "single", "paginated_table", "readiness_chart"):
        assert callable(resolve_handler(name))
