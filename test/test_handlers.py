import pytest
from sqlalchemy import literal, select
from sqlalchemy.sql.elements import False_

from fhirsearch.errors import HandlerRegistrationError
from fhirsearch.model import Encounter, Patient
from fhirsearch.search import (
    AndListParam,
    HandlerKey,
    HandlerKind,
    QuantityParam,
    SearchParameterMap,
    StringParam,
)
from fhirsearch.search.composer import CriteriaComposer
from fhirsearch.search.context import CriteriaContext
from fhirsearch.search.handlers import (
    DEFAULT_REGISTRY,
    HandlerRegistry,
    StringHandler,
    TokenHandler,
    handle_and_list,
    handle_or_list,
    handle_quantity,
)
from fhirsearch.dao import PatientDao


class TestHandlerRegistry:
    "HandlerRegistry"

    def test_default_covers_every_criteria_key(self):
        assert set(DEFAULT_REGISTRY) == {k for k in HandlerKey if k.kind != HandlerKind.INCLUDE}
        for key, handler in DEFAULT_REGISTRY.items():
            assert handler.kind == key.kind

    def test_unknown_keys(self):
        assert DEFAULT_REGISTRY.get("name.search.handler") is None
        assert DEFAULT_REGISTRY.get(HandlerKey.INCLUDE) is None
        with pytest.raises(KeyError):
            DEFAULT_REGISTRY[HandlerKey.INCLUDE]

    def test_immutable(self):
        with pytest.raises(TypeError):
            DEFAULT_REGISTRY[HandlerKey.NAME] = StringHandler()

    def test_registration_errors(self):
        with pytest.raises(HandlerRegistrationError):
            HandlerRegistry({"name.search.handler": StringHandler()})
        with pytest.raises(HandlerRegistrationError):
            HandlerRegistry({HandlerKey.NAME: TokenHandler()})
        with pytest.raises(HandlerRegistrationError):
            HandlerRegistry({HandlerKey.INCLUDE: StringHandler()})

    def test_registration_does_not_alias_input(self):
        handlers = {HandlerKey.NAME: StringHandler()}
        registry = HandlerRegistry(handlers)
        handlers[HandlerKey.GENDER] = TokenHandler()
        assert list(registry) == [HandlerKey.NAME]

    def test_missing_handler_is_ignored(self, session, settings):
        """criteria without a registered handler do not constrain the search"""
        registry = HandlerRegistry(
            {k: h for k, h in DEFAULT_REGISTRY.items() if k != HandlerKey.NAME}
        )
        composer = CriteriaComposer(registry, settings)
        dao = PatientDao(session)
        params = SearchParameterMap().add_parameter(
            HandlerKey.NAME, AndListParam.of(StringParam("Jane")), "given"
        )
        composed = composer.compose(dao, params)
        assert dao.search_results_count(composed) == 3


def test_or_list_without_values_is_false():
    assert isinstance(handle_or_list([], lambda value: value), False_)


def test_or_list_dropping_every_value():
    assert handle_or_list(["a", "b"], lambda value: None) is None


def test_and_list_without_groups():
    assert handle_and_list(AndListParam(), lambda value: value) is None
    assert handle_and_list(None, lambda value: value) is None


def test_context_reuses_joins(settings):
    context = CriteriaContext(Encounter, settings)
    names = context.join(("patient", "names"))
    assert context.join(("patient", "names")) is names
    assert context.join(()) is context.root

    context.join(("patient", "identifiers"))
    context.join(("location",), outer=True)
    assert context.joined_paths == [
        ("patient",),
        ("patient", "names"),
        ("patient", "identifiers"),
        ("location",),
    ]


def test_compose_is_repeatable(session, composer):
    dao = PatientDao(session)
    params = SearchParameterMap().add_parameter(
        HandlerKey.NAME, AndListParam.of(StringParam("J")), "given"
    )
    first = composer.compose(dao, params)
    second = composer.compose(dao, params)

    assert first.resource_type == "Patient"
    assert first.model is Patient
    assert dao.search_result_uuids(first) == dao.search_result_uuids(second)
    assert dao.search_results_count(first) == dao.search_results_count(first) == 3


@pytest.mark.parametrize(
    "stored,value,matches",
    [
        (110.0, 100, True),
        (90.0, 100, True),
        (110.5, 100, False),
        (0.0, 0, True),
        (0.1, 0, False),
        (5.25, "5.2", True),
        (5.26, "5.2", False),
    ],
)
def test_quantity_approximation_window(session, stored, value, matches):
    """the approximate window includes both of its edges"""
    predicate = handle_quantity(literal(stored), QuantityParam(value))
    assert bool(session.scalar(select(predicate))) is matches
