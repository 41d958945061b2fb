import functools
from typing import Optional
from unittest.mock import MagicMock

import pytest

from cosmodi import ConstructionError, Container, NoProviderError, UsageError


class Config:
    def __init__(self, url: str) -> None:
        self.url = url


class DBService:
    def __init__(self, config: Config) -> None:
        self.config = config

    def get(self) -> str:
        return self.config.url


class Logger: ...


@pytest.fixture
def container() -> Container:
    c = Container()

    def make_config() -> Config:
        return Config("sqlite://test.db")

    c.add_singleton(make_config)
    c.add(DBService)
    return c


def test_invoke_non_callable_raises(container):
    with pytest.raises(UsageError, match="invoke expects a function"):
        container.invoke("not a function")


def test_invoke_injects_parameters(container):
    def handler(db: DBService, config: Config) -> str:
        assert db.config is config
        return db.get()

    assert container.invoke(handler) == "sqlite://test.db"


def test_invoke_without_parameters(container):
    assert container.invoke(lambda: 7) == 7


def test_invoke_does_not_call_fn_when_a_parameter_fails(container):
    fn = MagicMock()

    def handler(db: DBService, logger: Logger) -> None:
        fn(db, logger)

    with pytest.raises(NoProviderError) as ctx:
        container.invoke(handler)

    assert ctx.value.key is Logger
    fn.assert_not_called()


def test_invoke_resolves_in_declaration_order(container):
    order = []

    def make_logger() -> Logger:
        order.append("logger")
        return Logger()

    def make_config() -> Config:
        order.append("config")
        return Config("x")

    container.add(make_logger)
    container.add(make_config)

    def handler(logger: Logger, config: Config) -> None:
        order.append("handler")

    container.invoke(handler)
    assert order == ["logger", "config", "handler"]


def test_invoke_propagates_exceptions_raised_by_fn(container):
    def handler(db: DBService) -> None:
        msg = "handler failed"
        raise ValueError(msg)

    with pytest.raises(ValueError, match="handler failed"):
        container.invoke(handler)


def test_invoke_raises_error_returned_by_two_output_fn(container):
    err = ConstructionError("query failed")

    def handler(db: DBService) -> tuple[str, Optional[Exception]]:
        return "", err

    with pytest.raises(ConstructionError) as ctx:
        container.invoke(handler)
    assert ctx.value is err


def test_invoke_returns_value_of_two_output_fn(container):
    def handler(db: DBService) -> tuple[str, Optional[Exception]]:
        return db.get(), None

    assert container.invoke(handler) == "sqlite://test.db"


def test_invoke_unannotated_parameter_raises_usage_error(container):
    def handler(db) -> None:  # no annotation
        pass

    with pytest.raises(UsageError, match="parameter 'db'"):
        container.invoke(handler)


def test_invoke_keeps_defaults_for_unregistered_types(container):
    def handler(db: DBService, logger: Optional[Logger] = None, retries=2) -> tuple:
        return logger, retries

    assert container.invoke(handler) == (None, 2)


def test_invoke_callable_object(container):
    class Handler:
        def __call__(self, db: DBService) -> str:
            return db.get()

    assert container.invoke(Handler()) == "sqlite://test.db"


def test_invoke_bound_method(container):
    class Controller:
        prefix = "url="

        def show(self, config: Config) -> str:
            return self.prefix + config.url

    assert container.invoke(Controller().show) == "url=sqlite://test.db"


def test_invoke_partial(container):
    def handler(prefix: str, db: DBService) -> str:
        return prefix + db.get()

    assert container.invoke(functools.partial(handler, "url=")) == "url=sqlite://test.db"
